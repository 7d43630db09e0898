# src/musicxml2events/analyze.py
from __future__ import annotations
from xml.etree import ElementTree as ET
from typing import Dict, List, Optional, Tuple
import logging

from .dom import (
    Attributes, Backup, Barline, Chord, Direction, Ending, Forward, Measure, Node,
    Note, Part, Pitch, Repeat, Score, Sound, Time,
)
from .util.xml import F, FA, float_attr, get_ns, int_of, local, text_of

logger = logging.getLogger(__name__)

def _parse_numbers(raw: Optional[str]) -> Tuple[int, ...]:
    # "1, 2" / "1 2" / "1"
    out = []
    for tok in (raw or "").replace(",", " ").split():
        try:
            out.append(int(tok))
        except ValueError:
            continue
    return tuple(out) or (1,)

def _attributes(el: ET.Element, ns) -> Attributes:
    time = None
    time_el = F(el, "time", ns)
    if time_el is not None:
        beats = int_of(time_el, "beats", ns)
        bt = int_of(time_el, "beat-type", ns)
        if beats is not None and bt is not None:
            time = Time(beats, bt)
    return Attributes(divisions=int_of(el, "divisions", ns), time=time)

def _direction(el: ET.Element, ns, metronome_as_tempo: bool) -> Direction:
    tempo = dynamics = None
    sound = F(el, "sound", ns)
    if sound is not None:
        tempo = float_attr(sound, "tempo")
        dynamics = float_attr(sound, "dynamics")

    # kein <sound tempo> → <metronome><per-minute> als Ersatz
    if tempo is None and metronome_as_tempo:
        for dtyp in FA(el, "direction-type", ns):
            metr = F(dtyp, "metronome", ns)
            if metr is None:
                continue
            per_min = text_of(metr, "per-minute", ns)
            try:
                tempo = float(per_min) if per_min else None
            except ValueError:
                tempo = None
            if tempo is not None:
                break

    if tempo is None and dynamics is None:
        return Direction()
    return Direction(sound=Sound(tempo=tempo, dynamics=dynamics))

def _barline(el: ET.Element, ns) -> Barline:
    repeat = ending = None
    rep = F(el, "repeat", ns)
    if rep is not None:
        repeat = Repeat(direction=rep.attrib.get("direction", "backward"))
    end = F(el, "ending", ns)
    if end is not None:
        ending = Ending(type=end.attrib.get("type", "start"),
                        numbers=_parse_numbers(end.attrib.get("number")))
    return Barline(repeat=repeat, ending=ending, location=el.attrib.get("location", "right"))

def _note(el: ET.Element, ns) -> Note:
    pitch = None
    p = F(el, "pitch", ns)
    if p is not None:
        step = text_of(p, "step", ns)
        octave = int_of(p, "octave", ns)
        if step is not None and octave is not None:
            try:
                alter = int(round(float(text_of(p, "alter", ns) or 0)))
            except ValueError:
                alter = 0
            pitch = Pitch(step=step, octave=octave, alter=alter)
    return Note(
        duration=int_of(el, "duration", ns, 0),
        pitch=pitch,
        rest=F(el, "rest", ns) is not None,
        voice=text_of(el, "voice", ns),
        staff=text_of(el, "staff", ns),
    )

def _attach_chord_note(nodes: List[Node], note: Note) -> None:
    """<chord/>: Note gehört zum vorherigen Note/Chord-Knoten."""
    prev = nodes[-1] if nodes else None
    if isinstance(prev, Note):
        nodes[-1] = Chord(notes=(prev, note))
    elif isinstance(prev, Chord):
        nodes[-1] = Chord(notes=prev.notes + (note,))
    else:
        nodes.append(note)

def _measure(meas: ET.Element, ns, metronome_as_tempo: bool) -> Measure:
    nodes: List[Node] = []
    # Wir gehen die KIND-ELEMENTE des Measures IN REIHENFOLGE durch:
    for child in list(meas):
        tag = local(child.tag)

        if tag == "attributes":
            nodes.append(_attributes(child, ns))
        elif tag == "direction":
            nodes.append(_direction(child, ns, metronome_as_tempo))
        elif tag == "sound":
            # freistehendes <sound> direkt im Measure
            tempo = float_attr(child, "tempo")
            dynamics = float_attr(child, "dynamics")
            if tempo is not None or dynamics is not None:
                nodes.append(Direction(sound=Sound(tempo=tempo, dynamics=dynamics)))
        elif tag == "barline":
            nodes.append(_barline(child, ns))
        elif tag == "forward":
            nodes.append(Forward(duration=int_of(child, "duration", ns, 0)))
        elif tag == "backup":
            nodes.append(Backup(duration=int_of(child, "duration", ns, 0)))
        elif tag == "note":
            # Vorschlagsnoten haben keine Dauer
            if F(child, "grace", ns) is not None:
                continue
            note = _note(child, ns)
            if F(child, "chord", ns) is not None:
                _attach_chord_note(nodes, note)
            else:
                nodes.append(note)
        # harmony, print, figured-bass, ... tragen keine Zeitinformation

    return Measure(nodes=tuple(nodes), number=meas.attrib.get("number"))

def analyze_root(root: ET.Element, cfg: Optional[dict] = None) -> Score:
    cfg = cfg or {}
    metronome_as_tempo = bool(cfg.get("metronome_as_tempo", True))
    if local(root.tag) != "score-partwise":
        raise ValueError(f"unsupported MusicXML root <{local(root.tag)}>, expected <score-partwise>")
    ns = get_ns(root)

    # --- Part-Namen sammeln ---
    part_names: Dict[str,str] = {}
    pl = F(root, "part-list", ns)
    if pl is not None:
        for sp in FA(pl, "score-part", ns):
            pid = sp.attrib.get("id","P1")
            part_names[pid] = text_of(sp, "part-name", ns) or pid

    parts = []
    for part in FA(root, "part", ns):
        pid = part.attrib.get("id", "P1")
        measures = tuple(_measure(m, ns, metronome_as_tempo) for m in FA(part, "measure", ns))
        parts.append(Part(id=pid, measures=measures, name=part_names.get(pid, pid)))

    logger.debug("analyze: parts=%d measures=%s", len(parts), [len(p.measures) for p in parts])
    return Score(parts=tuple(parts))

def analyze_musicxml(path: str, cfg: Optional[dict] = None) -> Score:
    tree = ET.parse(path)
    return analyze_root(tree.getroot(), cfg)
