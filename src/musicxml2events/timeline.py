from __future__ import annotations
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .dom import Attributes, Note, Part, Time

DEFAULT_DIVISIONS = 1
DEFAULT_BPM = 60.0
DEFAULT_TIME = Time(4, 4)

# --- Events ---

@dataclass
class Event:
    tick: int
    measure_index: int
    on_notes: List[Note] = field(default_factory=list)
    off_notes: List[Note] = field(default_factory=list)
    wall_time: float = 0.0            # seconds, set by the resolver
    wall_time_duration: float = 0.0

    def add_on_note(self, note: Note) -> None:
        self.on_notes.append(note)

    def add_off_note(self, note: Note) -> None:
        self.off_notes.append(note)

    @property
    def max_duration(self) -> int:
        return max((n.duration for n in self.on_notes), default=0)

# --- Markers ---

@dataclass
class AttributesMarker:
    tick: int
    part: Optional[Part]
    attributes: Attributes
    divisions: int = DEFAULT_DIVISIONS   # effective, carried over when the node omits it
    time: Time = DEFAULT_TIME

@dataclass
class ValueMarker:
    tick: int
    value: float
    part: Optional[Part] = None       # None for tempo (global)

@dataclass
class Loop:
    begin: int
    end: int
    count: int = 1

@dataclass
class EndingRange:
    begin: int
    end: int
    numbers: Tuple[int, ...] = ()

@dataclass
class Diagnostic:
    tick: int
    part_id: Optional[str]
    measure_index: int
    kind: str                         # "backup_underflow" | "ending_without_start"
    message: str

def _insert_sorted(seq: list, item) -> None:
    # stabil: gleiche Ticks behalten die Einfügereihenfolge
    ticks = [getattr(x, "tick", getattr(x, "begin", 0)) for x in seq]
    key = getattr(item, "tick", getattr(item, "begin", 0))
    seq.insert(bisect_right(ticks, key), item)

def _last_at_or_before(seq: list, tick: int, part: Optional[Part] = None):
    for m in reversed(seq):
        if m.tick <= tick and (part is None or m.part is part):
            return m
    return None

# --- Aggregate ---

@dataclass
class EventSequence:
    """Tick-ordered timeline of one score.

    Events are unique per tick. Attributes/tempo/dynamics markers, loops and
    endings are kept sorted by tick as they are added.
    """
    _ticks: List[int] = field(default_factory=list)
    _events: Dict[int, Event] = field(default_factory=dict)
    attributes: List[AttributesMarker] = field(default_factory=list)
    tempos: List[ValueMarker] = field(default_factory=list)
    dynamics: List[ValueMarker] = field(default_factory=list)
    loops: List[Loop] = field(default_factory=list)
    endings: List[EndingRange] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    default_tempo: float = DEFAULT_BPM     # bpm before the first tempo marker, set by the resolver

    def clear(self) -> None:
        self._ticks.clear(); self._events.clear()
        self.attributes.clear(); self.tempos.clear(); self.dynamics.clear()
        self.loops.clear(); self.endings.clear(); self.diagnostics.clear()

    # --- events ---

    @property
    def events(self) -> List[Event]:
        return [self._events[t] for t in self._ticks]

    def __iter__(self) -> Iterator[Event]:
        return (self._events[t] for t in self._ticks)

    def __len__(self) -> int:
        return len(self._ticks)

    def event(self, tick: int) -> Optional[Event]:
        return self._events.get(tick)

    def get_or_add_event(self, tick: int, measure_index: int) -> Event:
        ev = self._events.get(tick)
        if ev is None:
            ev = Event(tick=tick, measure_index=measure_index)
            self._ticks.insert(bisect_left(self._ticks, tick), tick)
            self._events[tick] = ev
        return ev

    def event_at_or_before(self, tick: int) -> Optional[Event]:
        i = bisect_right(self._ticks, tick)
        return self._events[self._ticks[i-1]] if i else None

    def events_between(self, begin: int, end: int) -> List[Event]:
        i0 = bisect_left(self._ticks, begin)
        i1 = bisect_left(self._ticks, end)
        return [self._events[t] for t in self._ticks[i0:i1]]

    # --- markers ---

    def add_attributes(self, marker: AttributesMarker) -> None:
        _insert_sorted(self.attributes, marker)

    def add_tempo(self, marker: ValueMarker) -> None:
        _insert_sorted(self.tempos, marker)

    def add_dynamics(self, marker: ValueMarker) -> None:
        _insert_sorted(self.dynamics, marker)

    def add_loop(self, loop: Loop) -> None:
        _insert_sorted(self.loops, loop)

    def add_ending(self, ending: EndingRange) -> None:
        _insert_sorted(self.endings, ending)

    def attributes_at(self, tick: int, part: Optional[Part] = None) -> Optional[AttributesMarker]:
        return _last_at_or_before(self.attributes, tick, part)

    def tempo_at(self, tick: int) -> float:
        m = _last_at_or_before(self.tempos, tick)
        return m.value if m is not None else self.default_tempo

    def dynamics_at(self, tick: int, part: Optional[Part] = None) -> Optional[float]:
        m = _last_at_or_before(self.dynamics, tick, part)
        return m.value if m is not None else None

    # --- wall clock ---

    @property
    def duration(self) -> float:
        return self._events[self._ticks[-1]].wall_time if self._ticks else 0.0

    def wall_time_at(self, tick: float) -> float:
        """Interpoliert die Wall-Time an einem Tick (nach resolve_wall_times)."""
        if not self._ticks:
            return 0.0
        walls = [self._events[t].wall_time for t in self._ticks]
        return float(np.interp(float(tick), np.asarray(self._ticks, dtype=float), np.asarray(walls, dtype=float)))

    def tick_at(self, seconds: float) -> float:
        """Inverse of wall_time_at: tick position of a playback clock."""
        if not self._ticks:
            return 0.0
        walls = np.asarray([self._events[t].wall_time for t in self._ticks], dtype=float)
        return float(np.interp(float(seconds), walls, np.asarray(self._ticks, dtype=float)))

    def to_dict(self) -> Dict[str, Any]:
        def pid(p): return p.id if p is not None else None
        return {
            "events": [
                {"tick": e.tick, "measure": e.measure_index,
                 "on": len(e.on_notes), "off": len(e.off_notes),
                 "wall_time": round(e.wall_time, 6),
                 "wall_time_duration": round(e.wall_time_duration, 6)}
                for e in self
            ],
            "attributes": [
                {"tick": a.tick, "part": pid(a.part), "divisions": a.divisions,
                 "time": [a.time.beats, a.time.beat_type]}
                for a in self.attributes
            ],
            "tempos": [{"tick": t.tick, "bpm": t.value} for t in self.tempos],
            "dynamics": [{"tick": d.tick, "part": pid(d.part), "value": d.value} for d in self.dynamics],
            "loops": [{"begin": l.begin, "end": l.end, "count": l.count} for l in self.loops],
            "endings": [{"begin": e.begin, "end": e.end, "numbers": list(e.numbers)} for e in self.endings],
            "diagnostics": [
                {"tick": d.tick, "part": d.part_id, "measure": d.measure_index, "kind": d.kind, "message": d.message}
                for d in self.diagnostics
            ],
        }
