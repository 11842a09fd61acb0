"""Shared fixtures and local-import setup for the test suite."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_root_on_path()

from crftagger.model_builder import build_model  # noqa: E402
from crftagger.types import Sequence  # noqa: E402

LABELS = ("N", "V")
UNIGRAMS = ("U00:%x[0,0]", "U01:%x[-1,0]")
BIGRAMS = ("B",)

# Bigram block is row-major (prev, label): N->N, N->V, V->N, V->V.
WEIGHTS = {
    "U00:the": [1.0, 0.0],
    "U00:dog": [2.0, 0.0],
    "U00:runs": [0.0, 2.0],
    "U01:_B-1": [0.5, 0.0],
    "B": [-1.0, 1.0, 0.5, -1.0],
}


def words(*ws: str) -> Sequence:
    return Sequence.of([(w,) for w in ws])


@pytest.fixture
def model():
    return build_model(LABELS, UNIGRAMS, BIGRAMS, WEIGHTS)


@pytest.fixture
def make_words():
    return words
