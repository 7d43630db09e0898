from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

STEP_TO_SEMITONE = {"C":0,"D":2,"E":4,"F":5,"G":7,"A":9,"B":11}

class NodeKind(Enum):
    BARLINE = "barline"
    ATTRIBUTES = "attributes"
    DIRECTION = "direction"
    CHORD = "chord"
    NOTE = "note"
    FORWARD = "forward"
    BACKUP = "backup"

TIMED_KINDS = frozenset({NodeKind.CHORD, NodeKind.NOTE, NodeKind.FORWARD, NodeKind.BACKUP})

# --- Attributes ---

@dataclass(frozen=True)
class Time:
    beats: int = 4
    beat_type: int = 4

@dataclass(frozen=True)
class Attributes:
    divisions: Optional[int] = None   # ticks per beat
    time: Optional[Time] = None
    kind = NodeKind.ATTRIBUTES

# --- Directions ---

@dataclass(frozen=True)
class Sound:
    tempo: Optional[float] = None     # bpm
    dynamics: Optional[float] = None

@dataclass(frozen=True)
class Direction:
    sound: Optional[Sound] = None
    kind = NodeKind.DIRECTION

# --- Barlines ---

@dataclass(frozen=True)
class Repeat:
    direction: str                    # "forward" | "backward"

    @property
    def is_forward(self) -> bool:
        return self.direction == "forward"

@dataclass(frozen=True)
class Ending:
    type: str                         # "start" | "stop" | "discontinue"
    numbers: Tuple[int, ...] = (1,)

@dataclass(frozen=True)
class Barline:
    repeat: Optional[Repeat] = None
    ending: Optional[Ending] = None
    location: str = "right"
    kind = NodeKind.BARLINE

# --- Timed nodes ---

@dataclass(frozen=True)
class Pitch:
    step: str
    octave: int
    alter: int = 0

    @property
    def midi(self) -> int:
        return (self.octave + 1) * 12 + STEP_TO_SEMITONE[self.step] + int(self.alter)

@dataclass(frozen=True)
class Note:
    duration: int
    pitch: Optional[Pitch] = None     # None for rests / unpitched
    rest: bool = False
    voice: Optional[str] = None
    staff: Optional[str] = None
    kind = NodeKind.NOTE

@dataclass(frozen=True)
class Chord:
    notes: Tuple[Note, ...] = ()
    kind = NodeKind.CHORD

    @property
    def duration(self) -> int:
        # MusicXML: alle Noten eines Akkords teilen die Dauer der ersten
        return self.notes[0].duration if self.notes else 0

@dataclass(frozen=True)
class Forward:
    duration: int
    kind = NodeKind.FORWARD

@dataclass(frozen=True)
class Backup:
    duration: int
    kind = NodeKind.BACKUP

Node = Union[Barline, Attributes, Direction, Chord, Note, Forward, Backup]

# --- Document ---

@dataclass(frozen=True)
class Measure:
    nodes: Tuple[Node, ...] = ()
    number: Optional[str] = None

@dataclass(frozen=True)
class Part:
    id: str
    measures: Tuple[Measure, ...] = ()
    name: Optional[str] = None

@dataclass(frozen=True)
class Score:
    parts: Tuple[Part, ...] = field(default_factory=tuple)
