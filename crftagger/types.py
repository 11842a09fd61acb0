"""Input data model: tokens and the sequences they form.

A `Token` is one observation position: an ordered tuple of string attributes
(word, part-of-speech, ...) plus an optional label. A `Sequence` is the ordered
chain of tokens that the tagger decodes as a unit. Both are frozen; decoding
never mutates its input, it builds new tokens carrying the predicted labels.

The text forms mirror the model file separators::

    label|--|tag1|-|tag2        one token
    token<TAB>token<TAB>...     one sequence
"""
from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Iterable, Iterator, List, Optional, Tuple

__all__ = ["Token", "Sequence", "LABEL_SEP", "TAG_SEP", "TOKEN_SEP"]

LABEL_SEP = "|--|"
TAG_SEP = "|-|"
TOKEN_SEP = "\t"

LabelProb = Tuple[str, float]


@dataclass(frozen=True)
class Token:
    """
    A single observation position in a sequence.

    Attributes:
        tags: The attribute columns of this position. Feature templates address
              them by column index, so their order is significant.
        label: The gold or predicted label. ``None`` for pure inference input.
        probs: (Verbose decoding only) The marginal probability of every label
               at this position, as ``(label, probability)`` pairs in model
               label order.
    """
    tags: Tuple[str, ...]
    label: Optional[str] = None
    probs: Optional[Tuple[LabelProb, ...]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))

    @classmethod
    def put(cls, label: Optional[str], tags: Iterable[str]) -> "Token":
        """Builds a token from a label and its attribute columns."""
        return cls(tags=tuple(tags), label=label)

    @classmethod
    def get_field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def with_label(self, label: str, probs: Optional[Tuple[LabelProb, ...]] = None) -> "Token":
        """Returns a copy of this token carrying ``label`` and, optionally, ``probs``."""
        return replace(self, label=label, probs=probs)

    @property
    def prob(self) -> Optional[float]:
        """The marginal probability of the assigned label, if known."""
        if self.probs is None or self.label is None:
            return None
        return dict(self.probs).get(self.label)

    def serialize(self) -> str:
        label = self.label if self.label is not None else ""
        return f"{label}{LABEL_SEP}{TAG_SEP.join(self.tags)}"

    @classmethod
    def deserialize(cls, text: str) -> "Token":
        """
        Parses the ``label|--|tag1|-|tag2`` form back into a token.

        A string without the label separator is read as an unlabeled token made
        of tags only. An empty label also yields an unlabeled token.

        Raises:
            ValueError: If the string holds more than one label separator.
        """
        parts = text.split(LABEL_SEP)
        if len(parts) == 1:
            return cls(tags=tuple(parts[0].split(TAG_SEP)))
        if len(parts) != 2:
            raise ValueError(f"Malformed token text: {text!r}")
        label, tag_text = parts
        return cls(tags=tuple(tag_text.split(TAG_SEP)), label=label or None)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class Sequence:
    """
    An ordered, immutable chain of tokens decoded as one instance.

    Attributes:
        tokens: The tokens in chain order.
        seq_prob: (Verbose decoding only) The conditional probability of the
                  decoded label path given the observations.
    """
    tokens: Tuple[Token, ...]
    seq_prob: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.tokens, tuple):
            object.__setattr__(self, "tokens", tuple(self.tokens))

    @classmethod
    def of(cls, rows: Iterable[Iterable[str]], labels: Optional[Iterable[Optional[str]]] = None) -> "Sequence":
        """Convenience constructor from attribute rows and an optional label list."""
        rows = [tuple(r) for r in rows]
        if labels is None:
            return cls(tuple(Token(tags=r) for r in rows))
        labels = list(labels)
        if len(labels) != len(rows):
            raise ValueError("labels must match the number of rows")
        return cls(tuple(Token(tags=r, label=l) for r, l in zip(rows, labels)))

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    def __getitem__(self, idx: int) -> Token:
        return self.tokens[idx]

    def labels(self) -> List[Optional[str]]:
        return [t.label for t in self.tokens]

    def relabel(self, labels: List[str], probs: Optional[List[Tuple[LabelProb, ...]]] = None,
                seq_prob: Optional[float] = None) -> "Sequence":
        """
        Produces a new sequence of equal length carrying ``labels``.

        Every token keeps its attributes; only the label (and the verbose
        probabilities, when given) are replaced.

        Raises:
            ValueError: If ``labels`` does not match the sequence length.
        """
        if len(labels) != len(self.tokens):
            raise ValueError(
                f"Expected {len(self.tokens)} labels, got {len(labels)}"
            )
        if probs is None:
            new_tokens = tuple(t.with_label(l) for t, l in zip(self.tokens, labels))
        else:
            new_tokens = tuple(t.with_label(l, p) for t, l, p in zip(self.tokens, labels, probs))
        return Sequence(new_tokens, seq_prob=seq_prob)

    def compare(self, other: "Sequence") -> int:
        """Counts the positions at which both sequences carry the same label."""
        return sum(1 for a, b in zip(self.tokens, other.tokens) if a.label == b.label)

    def serialize(self) -> str:
        return TOKEN_SEP.join(t.serialize() for t in self.tokens)

    @classmethod
    def deserialize(cls, text: str) -> "Sequence":
        if not text:
            return cls(())
        return cls(tuple(Token.deserialize(part) for part in text.split(TOKEN_SEP)))

    def __str__(self) -> str:
        return self.serialize()
