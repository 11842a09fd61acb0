"""Manages the loading and validation of decoding configuration.

This module defines the `DecodeConfig` dataclass, a typed container for the
knobs that shape a prediction run (cost factor, worker pool, verbosity), and
`load_config`, which reads them from a YAML file.
"""
from __future__ import annotations
from dataclasses import dataclass
import math
from typing import Optional

import yaml

__all__ = ["DecodeConfig", "load_config", "BACKENDS"]

BACKENDS = ("serial", "thread", "process")


@dataclass
class DecodeConfig:
    """
    Settings for one prediction run.

    Attributes:
        cost_factor: Multiplier applied to edge scores. ``1.0`` reproduces the
                     model's own decision, ``0.0`` decodes every position
                     independently.
        backend: Where sequences are decoded: ``serial`` in the calling
                 thread, ``thread`` on a thread pool, ``process`` on a process
                 pool that receives the model once per worker.
        max_workers: Pool size; ``None`` lets the executor pick.
        chunksize: Number of sequences handed to a process worker at once.
        verbose: Attach marginal and path probabilities to the output.
        show_progress: Display a progress bar while decoding.
    """
    cost_factor: float = 1.0
    backend: str = "serial"
    max_workers: Optional[int] = None
    chunksize: int = 1
    verbose: bool = False
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend!r}")
        if not math.isfinite(self.cost_factor) or self.cost_factor < 0:
            raise ValueError(f"cost_factor must be a finite non-negative number, got {self.cost_factor}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.chunksize < 1:
            raise ValueError(f"chunksize must be at least 1, got {self.chunksize}")


def load_config(path: str = "decode.yaml") -> DecodeConfig:
    """
    Loads a `DecodeConfig` from a YAML file.

    Missing keys fall back to the dataclass defaults. Decoding settings may sit
    at the root of the file or under a ``decode`` key.

    Args:
        path: The path to the YAML file.

    Returns:
        A validated `DecodeConfig`.

    Raises:
        FileNotFoundError: If the file cannot be found.
        ValueError: If the YAML cannot be parsed or a value is out of range.
        TypeError: If the root of the YAML file is not a dictionary.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            y = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file at {path}: {e}")

    if y is None:
        y = {}
    if not isinstance(y, dict):
        raise TypeError(f"Configuration file {path} must be a dictionary.")
    section = y.get("decode", y)
    if not isinstance(section, dict):
        raise TypeError(f"The 'decode' section of {path} must be a dictionary.")

    max_workers = section.get("max_workers")
    return DecodeConfig(
        cost_factor=float(section.get("cost_factor", 1.0)),
        backend=str(section.get("backend", "serial")),
        max_workers=int(max_workers) if max_workers is not None else None,
        chunksize=int(section.get("chunksize", 1)),
        verbose=bool(section.get("verbose", False)),
        show_progress=bool(section.get("show_progress", False)),
    )
