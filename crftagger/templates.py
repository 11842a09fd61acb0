"""CRF++-style feature templates.

A template is a string such as ``U02:%x[-1,0]/%x[0,0]``. Its first letter
selects the template kind: ``U`` templates yield node (unigram) features and
``B`` templates yield edge (bigram) features that additionally condition on the
previous label. Each ``%x[row,col]`` macro is replaced by attribute column
``col`` of the token ``row`` positions away from the current one. Offsets that
fall outside the sequence expand to the boundary markers ``_B-k`` / ``_B+k``.

The expanded string is the feature key looked up in the model dictionary.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence as Seq, Tuple

from .errors import ModelFormatError

__all__ = [
    "Template",
    "TemplateSet",
    "SUPPORTED_VERSIONS",
    "DEFAULT_VERSION",
    "UNIGRAM_PREFIX",
    "BIGRAM_PREFIX",
]

UNIGRAM_PREFIX = "U"
BIGRAM_PREFIX = "B"
DEFAULT_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({DEFAULT_VERSION})

_MACRO = re.compile(r"%x\[(-?\d+),(\d+)\]")


@dataclass(frozen=True)
class Template:
    """A parsed template: literal text pieces interleaved with ``(row, col)`` macros."""
    source: str
    literals: Tuple[str, ...]
    macros: Tuple[Tuple[int, int], ...]

    @classmethod
    def parse(cls, source: str) -> "Template":
        if not source or source[0] not in (UNIGRAM_PREFIX, BIGRAM_PREFIX):
            raise ModelFormatError(f"Template must start with 'U' or 'B': {source!r}")
        literals: List[str] = []
        macros: List[Tuple[int, int]] = []
        pos = 0
        for m in _MACRO.finditer(source):
            literals.append(source[pos:m.start()])
            macros.append((int(m.group(1)), int(m.group(2))))
            pos = m.end()
        literals.append(source[pos:])
        if any("%x" in piece for piece in literals):
            raise ModelFormatError(f"Malformed macro in template: {source!r}")
        return cls(source=source, literals=tuple(literals), macros=tuple(macros))

    @property
    def is_bigram(self) -> bool:
        return self.source[0] == BIGRAM_PREFIX

    @property
    def max_column(self) -> int:
        """Highest attribute column referenced, or -1 if the template has no macros."""
        return max((col for _, col in self.macros), default=-1)

    def expand(self, rows: Seq[Seq[str]], position: int) -> str:
        """
        Expands this template at ``position`` into a feature key.

        Args:
            rows: The attribute rows of the whole sequence.
            position: The current position.

        Raises:
            ValueError: If a macro addresses a column the token does not have.
        """
        out = [self.literals[0]]
        n = len(rows)
        for (row, col), literal in zip(self.macros, self.literals[1:]):
            idx = position + row
            if idx < 0:
                out.append(f"_B{idx}")
            elif idx >= n:
                out.append(f"_B+{idx - n + 1}")
            else:
                tags = rows[idx]
                if col >= len(tags):
                    raise ValueError(
                        f"Template {self.source!r} reads column {col} but token {idx} has {len(tags)} columns"
                    )
                out.append(tags[col])
            out.append(literal)
        return "".join(out)


@dataclass(frozen=True)
class TemplateSet:
    """The versioned unigram and bigram templates a model was trained with."""
    version: str
    unigrams: Tuple[Template, ...]
    bigrams: Tuple[Template, ...]

    @classmethod
    def parse(cls, unigrams: Iterable[str], bigrams: Iterable[str], version: str = DEFAULT_VERSION) -> "TemplateSet":
        """
        Parses the raw template strings of a model header.

        Raises:
            ModelFormatError: If the version is unknown, or a template sits in
                              the wrong group or is malformed.
        """
        if version not in SUPPORTED_VERSIONS:
            raise ModelFormatError(f"Unsupported template version: {version}")
        u = tuple(Template.parse(s) for s in unigrams)
        b = tuple(Template.parse(s) for s in bigrams)
        if any(t.is_bigram for t in u):
            raise ModelFormatError("Bigram template listed among unigram templates")
        if any(not t.is_bigram for t in b):
            raise ModelFormatError("Unigram template listed among bigram templates")
        return cls(version=version, unigrams=u, bigrams=b)

    def unigram_keys(self, rows: Seq[Seq[str]], position: int) -> List[str]:
        return [t.expand(rows, position) for t in self.unigrams]

    def bigram_keys(self, rows: Seq[Seq[str]], position: int) -> List[str]:
        return [t.expand(rows, position) for t in self.bigrams]
