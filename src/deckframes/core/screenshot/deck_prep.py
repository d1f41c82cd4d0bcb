"""Deck copies rendered by soffice: hidden slides made visible, and one-slide decks."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

from deckframes.core.utils.paths import open_presentation

logger = logging.getLogger(__name__)


def prepare_for_screenshots(pptx_path: Path, temp_dir: Path) -> Path:
    """Copy the deck into temp_dir with every slide shown.

    Hidden slides carry p:sld/@show="0"; without it soffice skips them and the
    page count no longer lines up with slide indexes.
    """
    prepared = temp_dir / pptx_path.name
    shutil.copyfile(pptx_path, prepared)

    prs = open_presentation(prepared)
    unhidden = 0
    for slide in prs.slides:
        sld = slide._element
        if sld.get("show") is not None:
            del sld.attrib["show"]
            unhidden += 1
    if unhidden:
        logger.debug("unhid %d slide(s) in %s", unhidden, prepared.name)
    prs.save(str(prepared))
    return prepared


def single_slide_copy(prepared_path: Path, temp_dir: Path, slide_index: int) -> Path:
    """A copy of the deck that keeps only slide `slide_index` (1-based)."""
    single = temp_dir / f"single-slide-{slide_index:03d}.pptx"
    prs = open_presentation(prepared_path)

    sld_id_lst = prs.slides._sldIdLst
    for i, sld_id in enumerate(list(sld_id_lst), start=1):
        if i == slide_index:
            continue
        prs.part.drop_rel(sld_id.rId)
        sld_id_lst.remove(sld_id)

    prs.save(str(single))
    return single
