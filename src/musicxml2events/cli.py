from __future__ import annotations
import argparse, logging, pathlib, sys, traceback
import yaml
from . import analyze, process
from .config import load_config

def main(argv=None):
    p = argparse.ArgumentParser(description="MusicXML -> event timeline (ticks + wall-clock)")
    p.add_argument("--in", dest="infile", required=True, help="Input MusicXML (.musicxml/.xml)")
    p.add_argument("--out", dest="outfile", required=False, help="Write the timeline as YAML to this file")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = p.parse_args(argv)

    cfg = load_config(args.config)
    level = logging.DEBUG if args.verbose else getattr(logging, str(cfg.get("log_level", "WARNING")).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    in_path = pathlib.Path(args.infile).expanduser().resolve()
    if not in_path.exists():
        print(f"[cli] ERROR: Input not found: {in_path}", file=sys.stderr)
        sys.exit(1)

    print(f"[cli] infile = {in_path}")

    try:
        score = analyze.analyze_musicxml(str(in_path), cfg)
        sequence = process.build_event_sequence(score, cfg)
    except Exception:
        traceback.print_exc()
        sys.exit(2)

    if args.outfile:
        out_path = pathlib.Path(args.outfile).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(yaml.safe_dump(sequence.to_dict(), sort_keys=False), encoding="utf-8")
        print(f"[cli] timeline -> {out_path}")

    for d in sequence.diagnostics:
        print(f"[cli] WARNING: {d.kind} part={d.part_id} measure={d.measure_index} tick={d.tick}: {d.message}")

    print(f"[cli] Done. parts={len(score.parts)} events={len(sequence)} loops={len(sequence.loops)} "
          f"endings={len(sequence.endings)} duration={sequence.duration:.3f}s")
    return 0

if __name__ == "__main__":
    sys.exit(main())
