"""Assembles well-formed `CRFModel` artifacts from labels, templates and weights.

Parameter estimation happens elsewhere; this module covers the bookkeeping that
turns its output into a model the decoder accepts:

1.  **Key Collection**: `collect_feature_keys` expands the templates over a
    corpus and lists every feature key in first-seen order, the same way the
    feature dictionary is grown before training.
2.  **ID Assignment**: `build_model` hands out dense IDs so that each unigram
    key owns ``L`` consecutive weights and each bigram key owns ``L*L``.
3.  **Header Rendering**: the labels, templates and counts are written into the
    keyed header list through `ModelHeader`.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Mapping, Optional, Sequence as Seq

import numpy as np
from tqdm import tqdm

from .header import ModelHeader
from .model import CRFModel
from .templates import BIGRAM_PREFIX, DEFAULT_VERSION, TemplateSet
from .types import Sequence

__all__ = ["collect_feature_keys", "build_model"]


def collect_feature_keys(templates: TemplateSet, corpus: Iterable[Sequence], show_progress: bool = False) -> List[str]:
    """
    Lists every feature key the templates produce over ``corpus``.

    Bigram keys are only collected from position 1 onwards, matching the edges
    the tagger actually scores.

    Args:
        templates: The compiled template set.
        corpus: The sequences to scan.
        show_progress: Display a progress bar.

    Returns:
        The distinct keys in first-seen order.
    """
    seen: Dict[str, None] = {}
    for seq in tqdm(corpus, desc="Collecting features", unit="seq", disable=not show_progress):
        rows = [t.tags for t in seq]
        for i in range(len(rows)):
            for key in templates.unigram_keys(rows, i):
                seen.setdefault(key, None)
            if i > 0:
                for key in templates.bigram_keys(rows, i):
                    seen.setdefault(key, None)
    return list(seen)


def build_model(
    labels: Seq[str],
    unigram_templates: Seq[str],
    bigram_templates: Seq[str],
    weights: Mapping[str, Optional[Iterable[float]]],
    xsize: int = 1,
    cost_factor: float = 1.0,
    version: str = DEFAULT_VERSION,
) -> CRFModel:
    """
    Builds a model whose dictionary and weight vector agree with its header.

    Args:
        labels: The label alphabet; label index ``y`` is ``labels[y]``.
        unigram_templates: ``U`` template strings.
        bigram_templates: ``B`` template strings.
        weights: Maps each feature key to its weight block: ``L`` values for a
                 unigram key, ``L*L`` values (row-major ``prev, label``) for a
                 bigram key. ``None`` stands for an all-zero block. IDs follow
                 the mapping's iteration order.
        xsize: The number of attribute columns per token.
        cost_factor: The training-time regularization constant to record.
        version: The template syntax version.

    Returns:
        A validated `CRFModel`.

    Raises:
        ValueError: If a weight block has the wrong size.
        ModelFormatError: If the assembled model fails validation.
    """
    L = len(labels)
    dic: List[tuple] = []
    blocks: List[np.ndarray] = []
    next_id = 0
    for key, block in weights.items():
        size = L * L if key.startswith(BIGRAM_PREFIX) else L
        values = np.zeros(size) if block is None else np.asarray(list(block), dtype=np.float64).ravel()
        if values.size != size:
            raise ValueError(f"Feature {key!r} needs {size} weights, got {values.size}")
        dic.append((key, next_id))
        blocks.append(values)
        next_id += size

    alpha = np.concatenate(blocks) if blocks else np.zeros(0)
    header = ModelHeader(
        maxid=int(alpha.size),
        labels=tuple(labels),
        unigram_templates=tuple(unigram_templates),
        bigram_templates=tuple(bigram_templates),
        xsize=xsize,
        cost_factor=cost_factor,
        version=version,
    )
    model = CRFModel(head=header.to_head(), dic=tuple(dic), alpha=alpha)
    model.layout  # raises if the header and blocks disagree
    return model
