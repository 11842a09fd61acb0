"""Typed view over the keyed header list stored in ``CRFModel.head``.

The header is a flat list of strings where a handful of marker fields
(``maxid:``, ``Labels:``, ``UGrams:`` ...) introduce the values that follow
them. ``head[1]`` is always the weight count so that the binary reader can size
the weight file before it parses anything else.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .errors import ModelFormatError
from .templates import DEFAULT_VERSION, TemplateSet

__all__ = ["ModelHeader"]

MAXID = "maxid:"
VERSION = "version:"
COST_FACTOR = "cost-factor:"
XSIZE = "xsize:"
LABELS = "Labels:"
UGRAMS = "UGrams:"
BGRAMS = "BGrams:"

_SCALARS = (MAXID, VERSION, COST_FACTOR, XSIZE)
_LISTS = (LABELS, UGRAMS, BGRAMS)


@dataclass(frozen=True)
class ModelHeader:
    """
    Parsed model metadata.

    Attributes:
        maxid: The number of weights in ``alpha``.
        version: The template syntax version the model was trained with.
        cost_factor: The regularization constant used at training time. It is
                     informational; decoding takes its own cost factor.
        xsize: The number of attribute columns each token is expected to carry.
        labels: The label alphabet, in label-index order.
        unigram_templates: Raw ``U`` template strings.
        bigram_templates: Raw ``B`` template strings.
    """
    maxid: int
    labels: Tuple[str, ...]
    unigram_templates: Tuple[str, ...]
    bigram_templates: Tuple[str, ...]
    xsize: int = 1
    cost_factor: float = 1.0
    version: str = DEFAULT_VERSION

    @classmethod
    def parse(cls, head: List[str] | Tuple[str, ...]) -> "ModelHeader":
        """
        Reads a header list into a `ModelHeader`.

        Raises:
            ModelFormatError: If a marker is missing, a scalar is malformed, or
                              the weight count is not the second field.
        """
        if len(head) < 2 or head[0] != MAXID:
            raise ModelFormatError("Model header must start with 'maxid:' and the weight count")

        scalars: Dict[str, str] = {}
        lists: Dict[str, List[str]] = {}
        current: List[str] | None = None
        i = 0
        while i < len(head):
            field = head[i]
            if field in _SCALARS:
                if i + 1 >= len(head):
                    raise ModelFormatError(f"Header field {field!r} has no value")
                scalars[field] = head[i + 1]
                current = None
                i += 2
                continue
            if field in _LISTS:
                current = lists.setdefault(field, [])
                i += 1
                continue
            if current is None:
                raise ModelFormatError(f"Unexpected header field: {field!r}")
            current.append(field)
            i += 1

        try:
            maxid = int(scalars[MAXID])
            xsize = int(scalars.get(XSIZE, "1"))
            cost_factor = float(scalars.get(COST_FACTOR, "1.0"))
        except ValueError as e:
            raise ModelFormatError(f"Malformed numeric header field: {e}")

        labels = tuple(lists.get(LABELS, []))
        if not labels:
            raise ModelFormatError("Model header declares no labels")
        if len(set(labels)) != len(labels):
            raise ModelFormatError("Model header declares duplicate labels")
        if maxid < 0:
            raise ModelFormatError(f"Negative weight count: {maxid}")

        return cls(
            maxid=maxid,
            labels=labels,
            unigram_templates=tuple(lists.get(UGRAMS, [])),
            bigram_templates=tuple(lists.get(BGRAMS, [])),
            xsize=xsize,
            cost_factor=cost_factor,
            version=scalars.get(VERSION, DEFAULT_VERSION),
        )

    def to_head(self) -> Tuple[str, ...]:
        """Renders the header back into its flat list form."""
        head: List[str] = [
            MAXID, str(self.maxid),
            VERSION, self.version,
            COST_FACTOR, repr(float(self.cost_factor)),
            XSIZE, str(self.xsize),
            LABELS, *self.labels,
            UGRAMS, *self.unigram_templates,
            BGRAMS, *self.bigram_templates,
        ]
        return tuple(head)

    @property
    def label_count(self) -> int:
        return len(self.labels)

    def templates(self) -> TemplateSet:
        return TemplateSet.parse(self.unigram_templates, self.bigram_templates, self.version)
