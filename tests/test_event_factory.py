from __future__ import annotations

import unittest

from musicxml2events.dom import (
    Attributes, Backup, Barline, Chord, Direction, Ending, Forward, Measure, NodeKind,
    Note, Part, Pitch, Repeat, Score, Sound, Time,
)
from musicxml2events.process import EventFactory, build_event_sequence


def _score(*measures, part_id="P1"):
    return Score(parts=(Part(id=part_id, measures=tuple(Measure(nodes=tuple(m)) for m in measures)),))


def _attrs(divisions=1, beats=4, beat_type=4):
    return Attributes(divisions=divisions, time=Time(beats, beat_type))


def _tempo(bpm):
    return Direction(sound=Sound(tempo=bpm))


class ScenarioTests(unittest.TestCase):
    def test_single_note_onset_and_offset(self) -> None:
        note = Note(4, pitch=Pitch("C", 4))
        seq = build_event_sequence(_score([_attrs(), _tempo(60), note]))
        self.assertEqual([e.tick for e in seq], [0, 4])
        self.assertEqual(seq.event(0).on_notes, [note])
        self.assertEqual(seq.event(0).wall_time, 0.0)
        self.assertEqual(seq.event(0).wall_time_duration, 4.0)
        self.assertEqual(seq.event(4).off_notes, [note])
        self.assertAlmostEqual(seq.event(4).wall_time, 4.0)

    def test_tempo_120_halves_wall_time(self) -> None:
        seq = build_event_sequence(_score([_attrs(), _tempo(120), Note(4)]))
        self.assertAlmostEqual(seq.event(4).wall_time, 2.0)
        self.assertAlmostEqual(seq.event(0).wall_time_duration, 2.0)

    def test_forward_and_backward_repeat_make_one_loop(self) -> None:
        seq = build_event_sequence(_score(
            [Barline(repeat=Repeat("forward"), location="left"), _attrs(), Note(4)],
            [Note(4)],
            [Note(4)],
            [Note(4), Barline(repeat=Repeat("backward"))],
        ))
        self.assertEqual(len(seq.loops), 1)
        loop = seq.loops[0]
        self.assertEqual((loop.begin, loop.end, loop.count), (0, 16, 1))

    def test_discontinued_ending_overwrites_loop_count(self) -> None:
        seq = build_event_sequence(_score(
            [Barline(repeat=Repeat("forward"), location="left"), _attrs(), Note(4)],
            [Note(4)],
            [Note(4)],
            [Note(4)],
            [Barline(ending=Ending("start", (1,)), location="left"), Note(4),
             Barline(repeat=Repeat("backward"), ending=Ending("stop", (1,)))],
            [Barline(ending=Ending("start", (2,)), location="left"), Note(4),
             Barline(ending=Ending("discontinue", (2,)))],
        ))
        self.assertEqual([(e.begin, e.end, e.numbers) for e in seq.endings],
                         [(16, 20, (1,)), (20, 24, (2,))])
        self.assertEqual(len(seq.loops), 1)
        self.assertEqual((seq.loops[0].begin, seq.loops[0].end), (0, 20))
        self.assertEqual(seq.loops[0].count, 1)

    def test_discontinue_uses_highest_ending_number(self) -> None:
        seq = build_event_sequence(_score(
            [_attrs(), Note(4), Barline(repeat=Repeat("backward"))],
            [Barline(ending=Ending("start", (1, 2)), location="left"), Note(4),
             Barline(ending=Ending("stop", (1, 2)))],
            [Barline(ending=Ending("start", (3,)), location="left"), Note(4),
             Barline(ending=Ending("discontinue", (3,)))],
        ))
        self.assertEqual(seq.loops[0].count, 2)

    def test_backup_merges_two_voices(self) -> None:
        v1 = Note(2, pitch=Pitch("E", 4), voice="1")
        v2 = Note(2, pitch=Pitch("C", 4), voice="2")
        seq = build_event_sequence(_score([_attrs(), v1, Backup(2), v2]))
        self.assertEqual(len(seq), 2)
        self.assertEqual(seq.event(0).on_notes, [v1, v2])
        self.assertEqual(seq.event(2).off_notes, [v1, v2])


class TimedNodeTests(unittest.TestCase):
    def test_chord_registers_all_notes_and_advances_once(self) -> None:
        chord = Chord(notes=(Note(2, pitch=Pitch("C", 4)), Note(2, pitch=Pitch("E", 4))))
        after = Note(2, pitch=Pitch("G", 4))
        seq = build_event_sequence(_score([_attrs(), chord, after]))
        self.assertEqual(len(seq.event(0).on_notes), 2)
        self.assertEqual(seq.event(2).on_notes, [after])
        self.assertEqual(len(seq.event(2).off_notes), 2)

    def test_forward_skips_time_without_events(self) -> None:
        seq = build_event_sequence(_score([_attrs(), Forward(3), Note(1)]))
        self.assertEqual([e.tick for e in seq], [3, 4])

    def test_note_gives_onset_and_offset_touchpoints(self) -> None:
        note = Note(3)
        seq = build_event_sequence(_score([_attrs(), Forward(1), note]))
        touched = [e.tick for e in seq if note in e.on_notes or note in e.off_notes]
        self.assertEqual(touched, [1, 4])

    def test_measure_index_stamped_on_onset(self) -> None:
        seq = build_event_sequence(_score([_attrs(), Note(4)], [Note(4)]))
        self.assertEqual(seq.event(0).measure_index, 0)
        self.assertEqual(seq.event(4).measure_index, 1)
        self.assertEqual(seq.event(8).measure_index, 1)

    def test_backup_past_measure_start_is_clamped(self) -> None:
        late = Note(1, voice="2")
        seq = build_event_sequence(_score([_attrs(), Note(2), Backup(4), late]))
        self.assertIn(late, seq.event(0).on_notes)
        self.assertEqual([d.kind for d in seq.diagnostics], ["backup_underflow"])
        self.assertEqual(seq.diagnostics[0].part_id, "P1")

    def test_backup_allow_policy_keeps_rewind(self) -> None:
        late = Note(1, voice="2")
        seq = build_event_sequence(_score([_attrs(), Note(1), Backup(3), late]),
                                   {"backup_policy": "allow"})
        self.assertEqual(seq.event(-2).on_notes, [late])
        self.assertEqual(len(seq.diagnostics), 1)


class WalkerTests(unittest.TestCase):
    def test_short_measure_still_advances_full_measure(self) -> None:
        second = Note(1)
        seq = build_event_sequence(_score([_attrs(), Note(2)], [second]))
        self.assertEqual(seq.event(4).on_notes, [second])

    def test_measure_length_uses_divisions_and_beats(self) -> None:
        second = Note(6)
        seq = build_event_sequence(_score([_attrs(2, 3, 4), Note(6)], [second]))
        self.assertEqual(seq.event(6).on_notes, [second])

    def test_defaults_without_attributes(self) -> None:
        second = Note(1)
        seq = build_event_sequence(_score([Note(1)], [second]))
        self.assertEqual(seq.event(4).on_notes, [second])

    def test_trailing_direction_snaps_cursor_to_measure_end(self) -> None:
        seq = build_event_sequence(_score([_attrs(), Note(2), _tempo(90)]))
        self.assertEqual([t.tick for t in seq.tempos], [4])

    def test_no_snap_without_attributes(self) -> None:
        seq = build_event_sequence(_score([Note(2), _tempo(90)]))
        self.assertEqual([t.tick for t in seq.tempos], [2])

    def test_no_snap_when_last_node_is_timed(self) -> None:
        seq = build_event_sequence(_score([_attrs(), _tempo(90), Note(2)], [Note(1)]))
        self.assertEqual([t.tick for t in seq.tempos], [0])
        self.assertIsNotNone(seq.event(4))

    def test_attributes_without_divisions_carry_previous(self) -> None:
        seq = build_event_sequence(_score(
            [_attrs(divisions=2), Note(8)],
            [Attributes(time=Time(3, 4)), Note(6)],
        ))
        marker = seq.attributes[-1]
        self.assertEqual((marker.tick, marker.divisions, marker.time), (8, 2, Time(3, 4)))

    def test_dynamics_marker_owned_by_part(self) -> None:
        score = _score([_attrs(), Direction(sound=Sound(dynamics=80)), Note(4)])
        seq = build_event_sequence(score)
        self.assertEqual(len(seq.dynamics), 1)
        self.assertIs(seq.dynamics[0].part, score.parts[0])
        self.assertEqual(seq.dynamics_at(3, score.parts[0]), 80.0)

    def test_direction_without_sound_is_ignored(self) -> None:
        seq = build_event_sequence(_score([_attrs(), Direction(), Note(4)]))
        self.assertEqual(seq.tempos, [])
        self.assertEqual(seq.dynamics, [])

    def test_ending_stop_without_start_is_reported(self) -> None:
        seq = build_event_sequence(_score([_attrs(), Note(4), Barline(ending=Ending("stop", (1,)))]))
        self.assertEqual(seq.endings, [])
        self.assertEqual([d.kind for d in seq.diagnostics], ["ending_without_start"])

    def test_backward_repeat_without_forward_starts_at_zero(self) -> None:
        seq = build_event_sequence(_score(
            [_attrs(), Note(4)], [Note(4), Barline(repeat=Repeat("backward"))],
        ))
        self.assertEqual((seq.loops[0].begin, seq.loops[0].end), (0, 8))

    def test_back_to_back_repeats(self) -> None:
        seq = build_event_sequence(_score(
            [_attrs(), Note(4), Barline(repeat=Repeat("backward"))],
            [Note(4), Barline(repeat=Repeat("backward"))],
        ))
        self.assertEqual([(l.begin, l.end) for l in seq.loops], [(0, 4), (4, 8)])

    def test_barlines_recorded_for_first_part_only(self) -> None:
        measures = (
            Measure(nodes=(Barline(repeat=Repeat("forward"), location="left"), _attrs(), Note(4))),
            Measure(nodes=(Note(4), Barline(repeat=Repeat("backward")))),
        )
        score = Score(parts=(Part("P1", measures), Part("P2", measures)))
        seq = build_event_sequence(score)
        self.assertEqual(len(seq.loops), 1)
        self.assertEqual(len(seq.attributes), 2)

    def test_parts_share_events_per_tick(self) -> None:
        long, short = Note(4, voice="1"), Note(2, voice="1", staff="2")
        score = Score(parts=(
            Part("P1", (Measure(nodes=(_attrs(), long)),)),
            Part("P2", (Measure(nodes=(_attrs(), short)),)),
        ))
        seq = build_event_sequence(score)
        self.assertEqual(seq.event(0).on_notes, [long, short])
        self.assertEqual(seq.event(0).max_duration, 4)
        self.assertEqual([a.part.id for a in seq.attributes], ["P1", "P2"])

    def test_dispatch_table_covers_every_kind(self) -> None:
        factory = EventFactory(Score())
        self.assertEqual(set(factory._handlers), set(NodeKind))


class PropertyTests(unittest.TestCase):
    def _multi_part_score(self) -> Score:
        p1 = (
            Measure(nodes=(Barline(repeat=Repeat("forward"), location="left"), _attrs(2), _tempo(80),
                           Note(2, voice="1"), Note(6, voice="1"), Backup(8), Note(8, voice="2"))),
            Measure(nodes=(Direction(sound=Sound(tempo=100, dynamics=70)),
                           Chord(notes=(Note(4), Note(4))), Forward(2), Note(2))),
            Measure(nodes=(Barline(ending=Ending("start", (1,)), location="left"), Note(8),
                           Barline(repeat=Repeat("backward"), ending=Ending("stop", (1,))))),
            Measure(nodes=(Barline(ending=Ending("start", (2,)), location="left"), _attrs(4, 3, 4),
                           Note(12), Barline(ending=Ending("discontinue", (2,))))),
        )
        p2 = (
            Measure(nodes=(_attrs(2), Note(3), Note(5))),
            Measure(nodes=(Direction(sound=Sound(dynamics=50)), Note(8))),
            Measure(nodes=(Note(1), Note(7), _attrs(2))),
        )
        return Score(parts=(Part("P1", p1), Part("P2", p2)))

    def test_sequences_are_tick_ordered(self) -> None:
        seq = build_event_sequence(self._multi_part_score())
        for ticks in (
            [e.tick for e in seq],
            [a.tick for a in seq.attributes],
            [t.tick for t in seq.tempos],
            [d.tick for d in seq.dynamics],
            [l.begin for l in seq.loops],
            [e.begin for e in seq.endings],
        ):
            self.assertEqual(ticks, sorted(ticks))
        event_ticks = [e.tick for e in seq]
        self.assertEqual(len(event_ticks), len(set(event_ticks)))

    def test_wall_time_strictly_increasing(self) -> None:
        seq = build_event_sequence(self._multi_part_score())
        walls = [e.wall_time for e in seq]
        self.assertTrue(all(b > a for a, b in zip(walls, walls[1:])))

    def test_rebuild_is_identical(self) -> None:
        factory = EventFactory(self._multi_part_score())
        first = factory.build()
        second = factory.build()
        self.assertIsNot(first, second)
        self.assertEqual(first, second)
        self.assertEqual(first.to_dict(), second.to_dict())


if __name__ == "__main__":
    unittest.main()
