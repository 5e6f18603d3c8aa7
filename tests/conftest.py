from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from phrasereorder.models import Problem  # noqa: E402


@pytest.fixture
def problems() -> list[Problem]:
    """Small three-problem set used across session and service tests."""
    return [
        Problem(tokens=("Eu", "chamo-me", "Paulo"), note="Grammar: enclisis."),
        Problem(tokens=("Sou", "de", "Lisboa"), note="Grammar: origin."),
        Problem(tokens=("Moro", "no", "Porto"), note="Contraction: em + o."),
    ]
