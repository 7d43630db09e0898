from __future__ import annotations

def seconds_per_division(divisions: int, bpm: float) -> float:
    return 60.0 / (divisions * bpm)

def divisions_per_measure(divisions: int, beats: int) -> int:
    return int(divisions) * int(beats)
