from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging

from .config import get_backup_policy, get_default_divisions, get_default_tempo, get_default_time
from .dom import (
    Attributes, Barline, Backup, Chord, Direction, Forward, Measure, Node, NodeKind,
    Note, Part, Score, Time, TIMED_KINDS,
)
from .timeline import (
    AttributesMarker, Diagnostic, EndingRange, EventSequence, Loop, ValueMarker,
)
from .util.time import divisions_per_measure, seconds_per_division

logger = logging.getLogger(__name__)

@dataclass
class BuildContext:
    """Mutable cursor state of one build() call."""
    part: Optional[Part] = None
    part_index: int = 0
    measure_index: int = 0
    time: int = 0                     # tick cursor
    measure_start: int = 0
    loop_begin: int = 0
    ending_begin: Optional[int] = None
    first_pass: bool = True

    def start_part(self, part: Part, part_index: int) -> None:
        self.part = part
        self.part_index = part_index
        self.measure_index = 0
        self.time = 0
        self.measure_start = 0
        self.first_pass = part_index == 0

class EventFactory:
    """
    Builds an EventSequence from a Score: one forward pass over all parts and
    measures, then resolve_wall_times() over the finished events.
    """

    def __init__(self, score: Score, cfg: Optional[dict] = None):
        self.score = score
        self.cfg = cfg or {}
        self.default_divisions = get_default_divisions(self.cfg)
        self.default_time = get_default_time(self.cfg)
        self.backup_policy = get_backup_policy(self.cfg)
        self.ctx = BuildContext()
        self.sequence = EventSequence()
        self._handlers: Dict[NodeKind, Callable[[Node], None]] = {
            NodeKind.BARLINE: self._process_barline,
            NodeKind.ATTRIBUTES: self._process_attributes,
            NodeKind.DIRECTION: self._process_direction,
            NodeKind.CHORD: self._process_chord,
            NodeKind.NOTE: self._process_note,
            NodeKind.FORWARD: self._process_forward,
            NodeKind.BACKUP: self._process_backup,
        }

    def build(self) -> EventSequence:
        self.ctx = BuildContext()
        self.sequence = EventSequence()

        for pi, part in enumerate(self.score.parts):
            self.ctx.start_part(part, pi)
            for mi, measure in enumerate(part.measures):
                self.ctx.measure_index = mi
                self._process_measure(measure)

        resolve_wall_times(self.sequence, self.cfg)
        logger.debug(
            "build: parts=%d events=%d attributes=%d tempos=%d loops=%d endings=%d diagnostics=%d",
            len(self.score.parts), len(self.sequence), len(self.sequence.attributes),
            len(self.sequence.tempos), len(self.sequence.loops), len(self.sequence.endings),
            len(self.sequence.diagnostics),
        )
        return self.sequence

    # --- measure geometry ---

    def _current_geometry(self) -> Tuple[int, Time]:
        """(divisions, time) in effect at the measure start of the current part."""
        marker = self.sequence.attributes_at(self.ctx.measure_start, self.ctx.part)
        if marker is not None:
            return marker.divisions, marker.time
        return self.default_divisions, self.default_time

    def _measure_length(self) -> int:
        divisions, time = self._current_geometry()
        return divisions_per_measure(divisions, time.beats)

    # --- Score Walker ---

    def _process_measure(self, measure: Measure) -> None:
        ctx = self.ctx
        last = len(measure.nodes) - 1
        for i, node in enumerate(measure.nodes):
            # nicht-klingender Abschluss (z.B. Barline) → Cursor auf Taktende
            if (i == last and node.kind not in TIMED_KINDS
                    and self.sequence.attributes_at(ctx.time, ctx.part) is not None):
                ctx.time = ctx.measure_start + self._measure_length()

            if node.kind is NodeKind.BARLINE and not ctx.first_pass:
                continue
            self._handlers[node.kind](node)

        ctx.measure_start += self._measure_length()
        ctx.time = ctx.measure_start

    # --- Structural Recorder ---

    def _process_barline(self, barline: Barline) -> None:
        ctx, seq = self.ctx, self.sequence

        if barline.repeat is not None:
            if barline.repeat.is_forward:
                ctx.loop_begin = ctx.time
            else:
                seq.add_loop(Loop(begin=ctx.loop_begin, end=ctx.time, count=1))
                ctx.loop_begin = ctx.time

        ending = barline.ending
        if ending is None:
            return
        if ending.type == "start":
            ctx.ending_begin = ctx.time
        else:
            if ctx.ending_begin is None:
                self._diagnose("ending_without_start",
                               f"ending {ending.type} {list(ending.numbers)} without a matching start")
            else:
                seq.add_ending(EndingRange(begin=ctx.ending_begin, end=ctx.time,
                                           numbers=tuple(ending.numbers)))
                ctx.ending_begin = None

            if ending.type == "discontinue" and seq.loops and ending.numbers:
                seq.loops[-1].count = max(ending.numbers) - 1

    def _process_attributes(self, attributes: Attributes) -> None:
        ctx = self.ctx
        prev = self.sequence.attributes_at(ctx.time, ctx.part)
        divisions = prev.divisions if prev is not None else self.default_divisions
        time = prev.time if prev is not None else self.default_time
        if attributes.divisions is not None and attributes.divisions > 0:
            divisions = int(attributes.divisions)
        if attributes.time is not None:
            time = attributes.time
        self.sequence.add_attributes(AttributesMarker(
            tick=ctx.time, part=ctx.part, attributes=attributes,
            divisions=divisions, time=time,
        ))

    def _process_direction(self, direction: Direction) -> None:
        sound = direction.sound
        if sound is None:
            return
        if sound.tempo is not None:
            self.sequence.add_tempo(ValueMarker(tick=self.ctx.time, value=float(sound.tempo)))
        if sound.dynamics is not None:
            self.sequence.add_dynamics(ValueMarker(tick=self.ctx.time, value=float(sound.dynamics),
                                                   part=self.ctx.part))

    # --- Timed-Node Handler ---

    def _process_chord(self, chord: Chord) -> None:
        for note in chord.notes:
            self._add_note(note)
        self.ctx.time += chord.duration

    def _process_note(self, note: Note) -> None:
        self._add_note(note)
        self.ctx.time += note.duration

    def _process_forward(self, forward: Forward) -> None:
        self.ctx.time += forward.duration

    def _process_backup(self, backup: Backup) -> None:
        ctx = self.ctx
        t = ctx.time - backup.duration
        if t < ctx.measure_start:
            self._diagnose("backup_underflow",
                           f"backup of {backup.duration} rewinds {ctx.measure_start - t} ticks past the measure start")
            if self.backup_policy == "clamp":
                t = ctx.measure_start  # Sicherheitsnetz
        ctx.time = t

    def _add_note(self, note: Note) -> None:
        ctx = self.ctx
        on = self.sequence.get_or_add_event(ctx.time, ctx.measure_index)
        on.measure_index = ctx.measure_index
        on.add_on_note(note)

        off = self.sequence.get_or_add_event(ctx.time + note.duration, ctx.measure_index)
        off.add_off_note(note)

    def _diagnose(self, kind: str, message: str) -> None:
        ctx = self.ctx
        part_id = ctx.part.id if ctx.part is not None else None
        self.sequence.diagnostics.append(Diagnostic(
            tick=ctx.time, part_id=part_id, measure_index=ctx.measure_index,
            kind=kind, message=message,
        ))
        logger.warning("part %s measure %d tick %d: %s", part_id, ctx.measure_index, ctx.time, message)

# --- Wall-Time Resolver ---

def resolve_wall_times(sequence: EventSequence, cfg: Optional[dict] = None) -> EventSequence:
    """
    Assigns wall_time / wall_time_duration to every event in place.

    Events, attributes markers and tempo markers are merged with three
    independent cursors. The gap between two events is integrated piecewise:
    each stretch is priced at the regime in effect there, switching exactly
    at marker ticks. A note's wall duration uses the regime at its onset.
    """
    cfg = cfg or {}
    divisions = get_default_divisions(cfg)
    tempo = get_default_tempo(cfg)
    sequence.default_tempo = tempo

    attrs, tempos = sequence.attributes, sequence.tempos
    ai = ti = 0
    prev_tick = 0
    wall = 0.0

    for ev in sequence:
        while True:
            pending = []
            if ai < len(attrs): pending.append(attrs[ai].tick)
            if ti < len(tempos): pending.append(tempos[ti].tick)
            if not pending or min(pending) > ev.tick:
                break
            change = min(pending)

            # bis zum Wechsel noch mit dem alten Regime
            if change > prev_tick:
                wall += seconds_per_division(divisions, tempo) * (change - prev_tick)
                prev_tick = change

            while ai < len(attrs) and attrs[ai].tick <= change:
                if attrs[ai].divisions > 0:
                    divisions = attrs[ai].divisions
                ai += 1
            while ti < len(tempos) and tempos[ti].tick <= change:
                if tempos[ti].value > 0:
                    tempo = tempos[ti].value
                ti += 1

        spd = seconds_per_division(divisions, tempo)
        wall += spd * (ev.tick - prev_tick)
        prev_tick = ev.tick

        ev.wall_time = wall
        ev.wall_time_duration = ev.max_duration * spd

    return sequence

def build_event_sequence(score: Score, cfg: Optional[dict] = None) -> EventSequence:
    return EventFactory(score, cfg).build()
