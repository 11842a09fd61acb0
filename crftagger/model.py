"""The trained CRF artifact, its prediction API and its two file formats.

Text format (one string, three sections)::

    <head fields joined by TAB>|--|<key|-|id entries joined by TAB>|--|<weights joined by TAB>

Binary format (a directory holding two files):

- ``head``: one line with the first two sections of the text format.
- ``alpha``: the weights as raw big-endian float32 values in ID order, with no
  length prefix. The reader takes the count from ``head[1]``.

Both formats store weights at single precision, so a round trip through either
of them rounds ``alpha`` to float32.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
from tqdm import tqdm

from .errors import FormatError
from .feature_index import FeatureIndex, ModelLayout, check_model
from .tagger import Tagger
from .types import Sequence

__all__ = [
    "CRFModel",
    "load",
    "save",
    "load_binary_file",
    "save_binary_file",
    "SECTION_SEP",
    "ENTRY_SEP",
]

logger = logging.getLogger(__name__)

SECTION_SEP = "|--|"
ENTRY_SEP = "|-|"
FIELD_SEP = "\t"
INCOMPATIBLE_FORMAT = "Incompatible formats in Model file"

HEAD_FILE = "head"
ALPHA_FILE = "alpha"
# Matches the byte order of the JVM data streams the format was defined with.
BINARY_DTYPE = np.dtype(">f4")

PathLike = Union[str, Path]


def _format_weights(alpha: np.ndarray) -> List[str]:
    return [str(w) for w in np.asarray(alpha, dtype=np.float32)]


def _parse_dic(section: str) -> Tuple[Tuple[str, int], ...]:
    entries = []
    for entry in section.split(FIELD_SEP):
        parts = entry.split(ENTRY_SEP)
        if len(parts) != 2:
            raise FormatError(INCOMPATIBLE_FORMAT)
        key, fid = parts
        try:
            entries.append((key, int(fid)))
        except ValueError as e:
            raise FormatError(INCOMPATIBLE_FORMAT) from e
    return tuple(entries)


@dataclass(frozen=True, eq=False)
class CRFModel:
    """
    An immutable trained linear-chain CRF.

    The model is shared read-only by every decode, so nothing on it changes
    after construction: ``alpha`` is a non-writeable array and the dictionary
    lookup table is built once here. Models compare by value and cannot be
    hashed.

    Attributes:
        head: The keyed header fields (see `crftagger.header.ModelHeader`).
        dic: ``(feature key, feature ID)`` pairs in dictionary order.
        alpha: The weight vector indexed by feature ID plus block offset.
    """
    head: Tuple[str, ...]
    dic: Tuple[Tuple[str, int], ...]
    alpha: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "head", tuple(str(h) for h in self.head))
        dic = self.dic.items() if isinstance(self.dic, Mapping) else self.dic
        object.__setattr__(self, "dic", tuple((str(k), int(v)) for k, v in dic))
        alpha = np.array(self.alpha, dtype=np.float64)
        alpha.setflags(write=False)
        object.__setattr__(self, "alpha", alpha)
        object.__setattr__(self, "_lookup", dict(self.dic))

    def __setstate__(self, state: dict) -> None:
        # Unpickling skips __post_init__; worker copies must stay read-only too.
        for name, value in state.items():
            object.__setattr__(self, name, value)
        self.alpha.setflags(write=False)

    # Equality compares weight arrays element-wise; models are not hashable.
    __hash__ = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CRFModel):
            return NotImplemented
        return (
            self.head == other.head
            and self.dic == other.dic
            and np.array_equal(self.alpha, other.alpha)
        )

    def __repr__(self) -> str:
        return f"CRFModel(head={len(self.head)} fields, dic={len(self.dic)} keys, alpha={len(self.alpha)} weights)"

    @cached_property
    def layout(self) -> ModelLayout:
        """The validated header and templates; raises `ModelFormatError` on mismatch."""
        return check_model(self)

    @property
    def labels(self) -> Tuple[str, ...]:
        return self.layout.labels

    def feature_id(self, key: str) -> Optional[int]:
        """Returns the ID of ``key``, or ``None`` when the model never saw it."""
        return self._lookup.get(key)

    # --- Prediction ---

    def decode(self, sequence: Sequence, cost_factor: float = 1.0, verbose: bool = False) -> Sequence:
        """
        Decodes one sequence and returns it relabeled.

        A fresh `FeatureIndex` and `Tagger` are built for the call, so
        concurrent decodes share nothing but this model.

        Args:
            sequence: The sequence to label. Existing labels are ignored.
            cost_factor: Multiplier applied to edge scores.
            verbose: When true, tokens also carry the marginal probability of
                     every label and the sequence carries the probability of
                     the decoded path.
        """
        index = FeatureIndex().read_model(self)
        tagger = Tagger(index.label_count)
        tagger.set_cost_factor(cost_factor)
        tagger.read(sequence, index)
        index.build_features(tagger)
        tagger.parse(index.alpha)
        labels = [index.labels[y] for y in tagger.results()]
        if not verbose:
            return sequence.relabel(labels)
        probs = [tuple(zip(index.labels, (float(p) for p in row))) for row in tagger.marginals()]
        return sequence.relabel(labels, probs, seq_prob=tagger.sequence_prob())

    def predict(
        self,
        sequences: Iterable[Sequence],
        cost_factor: float = 1.0,
        verbose: bool = False,
        show_progress: bool = False,
    ) -> List[Sequence]:
        """
        Labels every sequence independently, in input order.

        The model is validated before the first sequence is touched, so a
        malformed model fails the whole call up front.

        Args:
            sequences: The sequences to label.
            cost_factor: Multiplier applied to edge scores. ``1.0`` reproduces
                         the model's own decision.
            verbose: Attach marginal and path probabilities to the output.
            show_progress: Display a progress bar.

        Returns:
            New sequences of the same lengths carrying the predicted labels.

        Raises:
            ModelFormatError: If the model's header, dictionary and weights
                              are inconsistent.
        """
        if isinstance(sequences, Sequence):
            raise TypeError("predict expects a collection of sequences; use decode for a single one")
        self.layout  # validate before decoding anything
        seqs = list(sequences)
        logger.debug("Decoding %d sequences (cost_factor=%s)", len(seqs), cost_factor)
        return [
            self.decode(seq, cost_factor, verbose)
            for seq in tqdm(seqs, desc="Decoding", unit="seq", disable=not show_progress)
        ]

    def predict_parallel(
        self,
        sequences: Iterable[Sequence],
        cost_factor: float = 1.0,
        **kwargs,
    ) -> List[Sequence]:
        """Same as `predict`, fanned out over a worker pool; see `crftagger.parallel`."""
        from .parallel import predict_parallel

        return predict_parallel(self, sequences, cost_factor, **kwargs)

    # --- Text format ---

    def to_string_head(self) -> str:
        dic_string = FIELD_SEP.join(f"{k}{ENTRY_SEP}{v}" for k, v in self.dic)
        return f"{FIELD_SEP.join(self.head)}{SECTION_SEP}{dic_string}"

    def to_string(self) -> str:
        return f"{self.to_string_head()}{SECTION_SEP}{FIELD_SEP.join(_format_weights(self.alpha))}"

    def __str__(self) -> str:
        return self.to_string()

    @classmethod
    def load(cls, source: str) -> "CRFModel":
        """
        Parses a model from its text form.

        Raises:
            FormatError: If the text does not have exactly three sections, a
                         dictionary entry is malformed, or a weight does not
                         parse. Nothing is loaded partially.
        """
        components = source.split(SECTION_SEP)
        if len(components) != 3:
            raise FormatError(INCOMPATIBLE_FORMAT)
        head = components[0].split(FIELD_SEP)
        dic = _parse_dic(components[1])
        try:
            alpha = np.array([float(x) for x in components[2].split(FIELD_SEP)], dtype=np.float64)
        except ValueError as e:
            raise FormatError(INCOMPATIBLE_FORMAT) from e
        return cls(head=tuple(head), dic=dic, alpha=alpha)

    # --- Binary format ---

    def save_binary_file(self, path: PathLike) -> None:
        """Writes the ``head`` and ``alpha`` files under the directory ``path``."""
        out_dir = Path(path)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / HEAD_FILE).write_text(self.to_string_head(), encoding="utf-8")
        np.asarray(self.alpha, dtype=BINARY_DTYPE).tofile(out_dir / ALPHA_FILE)
        logger.info("Saved model with %d weights to %s", len(self.alpha), out_dir)

    @classmethod
    def load_binary_file(cls, path: PathLike) -> "CRFModel":
        """
        Reads a model written by `save_binary_file`.

        Only the first line of the ``head`` file is read. Exactly ``head[1]``
        weights are taken from the ``alpha`` file.

        Raises:
            FileNotFoundError: If either file is missing.
            FormatError: If the head line is malformed or the weight file is
                         shorter than the declared count.
        """
        in_dir = Path(path)
        head_path, alpha_path = in_dir / HEAD_FILE, in_dir / ALPHA_FILE
        try:
            lines = head_path.read_text(encoding="utf-8").splitlines()
            data = alpha_path.read_bytes()
        except FileNotFoundError as e:
            raise FileNotFoundError(f"Model file not found at: {e.filename}")

        if not lines:
            raise FormatError(INCOMPATIBLE_FORMAT)
        components = lines[0].split(SECTION_SEP)
        if len(components) != 2:
            raise FormatError(INCOMPATIBLE_FORMAT)
        head = components[0].split(FIELD_SEP)
        dic = _parse_dic(components[1])
        try:
            count = int(head[1])
        except (IndexError, ValueError) as e:
            raise FormatError(INCOMPATIBLE_FORMAT) from e
        if count < 0 or len(data) < count * BINARY_DTYPE.itemsize:
            raise FormatError(
                f"{INCOMPATIBLE_FORMAT}: expected {count} weights, found {len(data) // BINARY_DTYPE.itemsize}"
            )
        if count == 0:
            alpha = np.zeros(0, dtype=np.float64)
        else:
            alpha = np.frombuffer(data, dtype=BINARY_DTYPE, count=count).astype(np.float64)
        logger.info("Loaded model with %d weights from %s", count, in_dir)
        return cls(head=tuple(head), dic=dic, alpha=alpha)


def load(source: str) -> CRFModel:
    return CRFModel.load(source)


def save(model: CRFModel) -> str:
    return model.to_string()


def load_binary_file(path: PathLike) -> CRFModel:
    return CRFModel.load_binary_file(path)


def save_binary_file(model: CRFModel, path: PathLike) -> None:
    model.save_binary_file(path)
