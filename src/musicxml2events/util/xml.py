from __future__ import annotations
from typing import Optional
from xml.etree import ElementTree as ET

def get_ns(root):
    return {"m": root.tag.split('}')[0].strip('{')} if '}' in root.tag else {}

def local(tag: str) -> str:
    return tag.split('}')[-1] if '}' in tag else tag

def F(elem, tag, ns):
    return elem.find(f"m:{tag}", ns) if ns else elem.find(tag)

def FA(elem, tag, ns):
    return elem.findall(f"m:{tag}", ns) if ns else elem.findall(tag)

def text_of(elem: ET.Element, tag: str, ns) -> Optional[str]:
    el = F(elem, tag, ns)
    return el.text.strip() if el is not None and el.text else None

def int_of(elem: ET.Element, tag: str, ns, default: Optional[int] = None) -> Optional[int]:
    txt = text_of(elem, tag, ns)
    try:
        return int(txt) if txt is not None else default
    except ValueError:
        return default

def float_attr(elem: ET.Element, name: str) -> Optional[float]:
    try:
        return float(elem.attrib[name]) if name in elem.attrib else None
    except ValueError:
        return None
