"""Feature dictionary lookups for a single decode.

`FeatureIndex` binds to a trained model, expands the model's feature templates
over a sequence and resolves the resulting keys to feature IDs. It only reads
the model; a fresh index is built for every sequence.

Weight layout: a unigram key with ID ``f`` owns ``alpha[f : f + L]`` (one weight
per label), a bigram key owns ``alpha[f : f + L*L]`` laid out as
``prev_label * L + label``. The model is well-formed when these blocks tile
``alpha`` exactly.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

from .errors import IllegalStateError, ModelFormatError
from .header import ModelHeader
from .templates import BIGRAM_PREFIX, UNIGRAM_PREFIX, TemplateSet

if TYPE_CHECKING:
    from .model import CRFModel
    from .tagger import Tagger

__all__ = ["FeatureIndex", "ModelLayout", "check_model"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelLayout:
    """The validated header and compiled templates of a model."""
    header: ModelHeader
    templates: TemplateSet

    @property
    def labels(self) -> Tuple[str, ...]:
        return self.header.labels


def _block_size(key: str, label_count: int) -> int:
    if key.startswith(UNIGRAM_PREFIX):
        return label_count
    if key.startswith(BIGRAM_PREFIX):
        return label_count * label_count
    raise ModelFormatError(f"Feature key {key!r} belongs to neither a unigram nor a bigram template")


def check_model(model: "CRFModel") -> ModelLayout:
    """
    Verifies that a model's header, dictionary and weights agree.

    The checks are: the header parses, the declared weight count equals
    ``len(alpha)``, every key appears once, and the weight blocks owned by the dictionary entries start
    at 0 and tile ``alpha`` without gaps or overlaps.

    Args:
        model: The model to verify.

    Returns:
        A `ModelLayout` holding the parsed header and templates.

    Raises:
        ModelFormatError: If any of the checks fail.
    """
    header = ModelHeader.parse(model.head)
    templates = header.templates()
    n_weights = len(model.alpha)
    if header.maxid != n_weights:
        raise ModelFormatError(
            f"Header declares {header.maxid} weights but the model holds {n_weights}"
        )

    L = header.label_count
    if len(model._lookup) != len(model.dic):
        raise ModelFormatError(
            f"Feature dictionary has {len(model.dic)} entries but only {len(model._lookup)} distinct keys"
        )
    if not model.dic:
        if n_weights != 0:
            raise ModelFormatError("Model has weights but an empty feature dictionary")
        return ModelLayout(header=header, templates=templates)

    ids = np.fromiter((fid for _, fid in model.dic), dtype=np.int64, count=len(model.dic))
    sizes = np.fromiter((_block_size(k, L) for k, _ in model.dic), dtype=np.int64, count=len(model.dic))
    order = np.argsort(ids, kind="stable")
    ids, sizes = ids[order], sizes[order]

    if ids[0] != 0:
        raise ModelFormatError(f"Feature IDs must start at 0, first ID is {ids[0]}")
    ends = ids + sizes
    if not np.array_equal(ids[1:], ends[:-1]):
        bad = int(np.argmax(ids[1:] != ends[:-1])) + 1
        raise ModelFormatError(f"Feature ID {ids[bad]} does not follow the previous weight block")
    if ends[-1] != n_weights:
        raise ModelFormatError(
            f"Feature blocks cover {ends[-1]} weights but the model holds {n_weights}"
        )
    return ModelLayout(header=header, templates=templates)


class FeatureIndex:
    """
    Resolves template-derived feature keys to feature IDs for one sequence.

    Attributes:
        labels: The model's label alphabet, in label-index order.
        alpha: The model's read-only weight vector.
        templates: The compiled feature templates of the bound model.
    """
    def __init__(self) -> None:
        self._model: Optional["CRFModel"] = None
        self.labels: Tuple[str, ...] = ()
        self.alpha: Optional[np.ndarray] = None
        self.templates: Optional[TemplateSet] = None

    def read_model(self, model: "CRFModel") -> "FeatureIndex":
        """
        Binds this index to ``model``.

        Raises:
            ModelFormatError: If the model's header disagrees with its
                              dictionary or weight vector.
        """
        layout = model.layout
        self._model = model
        self.labels = layout.labels
        self.alpha = model.alpha
        self.templates = layout.templates
        return self

    @property
    def label_count(self) -> int:
        return len(self.labels)

    def _resolve(self, keys: List[str]) -> List[int]:
        # Keys the model never saw carry no weight and are dropped.
        ids: List[int] = []
        for key in keys:
            fid = self._model.feature_id(key)
            if fid is not None:
                ids.append(fid)
        return ids

    def build_features(self, tagger: "Tagger") -> None:
        """
        Attaches the active feature IDs of every lattice position to ``tagger``.

        Node features are computed for every position. Edge features are
        computed for positions 1 onwards, since position 0 has no incoming
        edges. Every label at a position shares the same feature IDs; the label
        only selects the offset inside each weight block.

        Raises:
            IllegalStateError: If the index is unbound or the tagger has not
                               read a sequence.
            ValueError: If a template addresses a missing attribute column.
        """
        if self._model is None:
            raise IllegalStateError("build_features called before read_model")
        rows = tagger.rows
        node_ids: List[List[int]] = []
        edge_ids: List[List[int]] = []
        for i in range(len(rows)):
            node_ids.append(self._resolve(self.templates.unigram_keys(rows, i)))
            if i == 0:
                edge_ids.append([])
            else:
                edge_ids.append(self._resolve(self.templates.bigram_keys(rows, i)))
        tagger.attach_features(node_ids, edge_ids)
