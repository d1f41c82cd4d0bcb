from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_A_NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

# schemeClr@val (normalized) -> key in the theme's a:clrScheme (normalized)
_SCHEME_ALIASES: Dict[str, str] = {
    "dk1": "dk1",
    "dark1": "dk1",
    "tx1": "dk1",
    "lt1": "lt1",
    "light1": "lt1",
    "bg1": "lt1",
    "dk2": "dk2",
    "dark2": "dk2",
    "tx2": "dk2",
    "lt2": "lt2",
    "light2": "lt2",
    "bg2": "lt2",
    "accent1": "accent1",
    "accent2": "accent2",
    "accent3": "accent3",
    "accent4": "accent4",
    "accent5": "accent5",
    "accent6": "accent6",
    "hlink": "hlink",
    "hyperlink": "hlink",
    "folhlink": "folhlink",
    "followedhyperlink": "folhlink",
}


def normalize_token(value: Optional[str]) -> Optional[str]:
    """'Accent 1' / 'ACCENT_1' / 'accent1' -> 'accent1'."""
    if value is None or not value.strip():
        return None
    return re.sub(r"[ _]", "", value.strip()).lower()


def load_theme_colors(pptx_path: Path) -> Dict[str, str]:
    """Theme color scheme from ppt/theme/theme1.xml (else the first theme part).

    Returns {'dk1': 'RRGGBB', 'accent1': 'RRGGBB', ...}; empty when unreadable.
    """
    out: Dict[str, str] = {}
    try:
        with zipfile.ZipFile(pptx_path, "r") as zf:
            names = zf.namelist()
            name = "ppt/theme/theme1.xml"
            if name not in names:
                themes = sorted(n for n in names if n.startswith("ppt/theme/") and n.endswith(".xml"))
                if not themes:
                    return out
                name = themes[0]
            xml_bytes = zf.read(name)
    except (OSError, zipfile.BadZipFile, KeyError) as e:
        logger.debug("theme not readable from %s: %s", pptx_path, e)
        return out

    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as e:
        logger.debug("theme XML parse failed for %s: %s", pptx_path, e)
        return out

    clr = root.find(".//a:themeElements/a:clrScheme", _A_NS)
    if clr is None:
        return out

    for child in list(clr):
        tag = child.tag.split("}", 1)[1] if "}" in child.tag else child.tag
        key = normalize_token(tag)
        if not key:
            continue

        srgb = child.find(".//a:srgbClr", _A_NS)
        if srgb is not None and srgb.get("val"):
            out[key] = str(srgb.get("val")).upper()
            continue
        sysc = child.find(".//a:sysClr", _A_NS)
        if sysc is not None and sysc.get("lastClr"):
            out[key] = str(sysc.get("lastClr")).upper()

    return out


def resolve_scheme_color(value: Optional[str], theme: Optional[Dict[str, str]]) -> Optional[str]:
    """schemeClr@val -> 'RRGGBB' via the theme map, or None."""
    if not theme:
        return None
    token = normalize_token(value)
    if token is None:
        return None
    key = _SCHEME_ALIASES.get(token)
    if key is None:
        return None
    return theme.get(key)
