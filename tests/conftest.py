from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FakeConverter, build_deck, make_png


@pytest.fixture(autouse=True)
def _no_settings_env(monkeypatch):
    monkeypatch.delenv("DECKFRAMES_CONFIG", raising=False)


@pytest.fixture
def png_image(tmp_path: Path) -> Path:
    return make_png(tmp_path / "assets" / "pic.png")


@pytest.fixture
def deck(tmp_path: Path, png_image: Path) -> Path:
    return build_deck(tmp_path / "decks" / "sample.pptx", image=png_image)


@pytest.fixture
def converter() -> FakeConverter:
    return FakeConverter()
