"""Data-parallel prediction over a worker pool.

Decoding one sequence only reads the model, so sequences can be spread over any
number of workers without coordination. Thread workers share the caller's
model object. Process workers receive the model once, through the executor
initializer, and keep it in a module-level slot for every task they run; each
worker therefore decodes against a value-equal copy of the same model.

Results always come back in input order and do not depend on which worker
decoded which sequence.
"""
from __future__ import annotations
import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial
from typing import Iterable, List, Optional

from tqdm import tqdm

from .config import DecodeConfig
from .model import CRFModel
from .types import Sequence

__all__ = ["predict_parallel", "run_predict", "make_executor"]

logger = logging.getLogger(__name__)

# Model broadcast to this process by the pool initializer.
_BROADCAST: Optional[CRFModel] = None


def _receive_broadcast(model: CRFModel) -> None:
    global _BROADCAST
    _BROADCAST = model


def _decode_broadcast(sequence: Sequence, cost_factor: float, verbose: bool) -> Sequence:
    if _BROADCAST is None:
        raise RuntimeError("Worker has not received a model broadcast")
    return _BROADCAST.decode(sequence, cost_factor, verbose)


def make_executor(model: CRFModel, backend: str = "thread", max_workers: Optional[int] = None) -> Executor:
    """
    Creates an executor ready to decode with ``model``.

    For the ``process`` backend the model is shipped to every worker exactly
    once when the worker starts.
    """
    if backend == "thread":
        return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="crf-decode")
    if backend == "process":
        return ProcessPoolExecutor(
            max_workers=max_workers,
            initializer=_receive_broadcast,
            initargs=(model,),
        )
    raise ValueError(f"Unknown parallel backend: {backend!r}")


def predict_parallel(
    model: CRFModel,
    sequences: Iterable[Sequence],
    cost_factor: float = 1.0,
    max_workers: Optional[int] = None,
    backend: str = "thread",
    verbose: bool = False,
    chunksize: int = 1,
    show_progress: bool = False,
) -> List[Sequence]:
    """
    Labels every sequence on a worker pool, returning results in input order.

    Per-sequence results are identical to `CRFModel.predict`.

    Args:
        model: The model to decode with.
        sequences: The sequences to label.
        cost_factor: Multiplier applied to edge scores.
        max_workers: Pool size; ``None`` lets the executor pick.
        backend: ``thread`` or ``process``.
        verbose: Attach marginal and path probabilities to the output.
        chunksize: Sequences per process task; ignored by thread pools.
        show_progress: Display a progress bar.

    Raises:
        ModelFormatError: If the model is malformed. Raised before any
                          worker starts.
    """
    if isinstance(sequences, Sequence):
        raise TypeError("predict_parallel expects a collection of sequences")
    model.layout  # validate before any worker starts
    seqs = list(sequences)
    if not seqs:
        return []

    logger.debug("Decoding %d sequences on a %s pool (max_workers=%s)", len(seqs), backend, max_workers)
    with make_executor(model, backend, max_workers) as executor:
        if backend == "process":
            task = partial(_decode_broadcast, cost_factor=cost_factor, verbose=verbose)
            results = executor.map(task, seqs, chunksize=chunksize)
        else:
            task = partial(model.decode, cost_factor=cost_factor, verbose=verbose)
            results = executor.map(task, seqs)
        return list(tqdm(results, total=len(seqs), desc="Decoding", unit="seq", disable=not show_progress))


def run_predict(model: CRFModel, sequences: Iterable[Sequence], cfg: DecodeConfig) -> List[Sequence]:
    """Runs a prediction with the settings of ``cfg``."""
    if cfg.backend == "serial":
        return model.predict(
            sequences,
            cfg.cost_factor,
            verbose=cfg.verbose,
            show_progress=cfg.show_progress,
        )
    return predict_parallel(
        model,
        sequences,
        cfg.cost_factor,
        max_workers=cfg.max_workers,
        backend=cfg.backend,
        verbose=cfg.verbose,
        chunksize=cfg.chunksize,
        show_progress=cfg.show_progress,
    )
