"""Lattice construction and Viterbi decoding for one sequence.

A `Tagger` is single-use scratch space. It walks a fixed sequence of states::

    UNINITIALIZED --read--> READ --attach_features--> FEATURES_BUILT --parse--> PARSED

and every method checks that it is called from the right state. The lattice is
held in pre-sized numpy arrays indexed by ``(position, label)`` for node scores
and backpointers and by ``(position, prev_label, label)`` for edge scores, so
the Viterbi recurrence is a handful of vectorized operations per position.

The cost factor scales edge scores only. With a cost factor of 0 the decode
reduces to picking the best node score at every position independently.
"""
from __future__ import annotations
import enum
import math
from typing import TYPE_CHECKING, List, Optional, Sequence as Seq, Tuple

import numpy as np

from .errors import IllegalStateError
from .types import Sequence

if TYPE_CHECKING:
    from .feature_index import FeatureIndex

__all__ = ["Tagger", "TaggerState"]


class TaggerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READ = "read"
    FEATURES_BUILT = "features_built"
    PARSED = "parsed"


def _logsumexp(a: np.ndarray, axis: int) -> np.ndarray:
    m = np.max(a, axis=axis, keepdims=True)
    m = np.where(np.isfinite(m), m, 0.0)
    out = np.log(np.sum(np.exp(a - m), axis=axis, keepdims=True)) + m
    return np.squeeze(out, axis=axis)


class Tagger:
    """
    Decodes the best label path of one sequence.

    Attributes:
        label_count: The number of labels ``L`` in the model.
        cost_factor: Multiplier applied to every edge score.
        state: The current `TaggerState`.
        node_cost: ``(n, L)`` node scores, filled by `parse`.
        edge_cost: ``(n, L, L)`` edge scores, filled by `parse`. Row 0 is unused.
        best_score: The score of the decoded path after `parse`.
    """
    def __init__(self, label_count: int):
        if label_count <= 0:
            raise ValueError(f"label_count must be positive, got {label_count}")
        self.label_count = label_count
        self.cost_factor = 1.0
        self.state = TaggerState.UNINITIALIZED
        self._rows: Tuple[Tuple[str, ...], ...] = ()
        self._node_ids: List[List[int]] = []
        self._edge_ids: List[List[int]] = []
        self.node_cost: Optional[np.ndarray] = None
        self.edge_cost: Optional[np.ndarray] = None
        self._score: Optional[np.ndarray] = None
        self._backptr: Optional[np.ndarray] = None
        self._result: Optional[np.ndarray] = None
        self.best_score: Optional[float] = None
        self._fb: Optional[Tuple[np.ndarray, np.ndarray, float]] = None

    def _require(self, expected: TaggerState, action: str) -> None:
        if self.state is not expected:
            raise IllegalStateError(
                f"{action} requires tagger state {expected.value}, current state is {self.state.value}"
            )

    def set_cost_factor(self, cost_factor: float) -> "Tagger":
        """
        Sets the edge-score multiplier. Only legal before `read`.

        Raises:
            IllegalStateError: If a sequence has already been read.
            ValueError: If ``cost_factor`` is negative or not finite.
        """
        self._require(TaggerState.UNINITIALIZED, "set_cost_factor")
        c = float(cost_factor)
        if not math.isfinite(c) or c < 0:
            raise ValueError(f"cost_factor must be a finite non-negative number, got {cost_factor}")
        self.cost_factor = c
        return self

    def read(self, sequence: Sequence, feature_index: Optional["FeatureIndex"] = None) -> "Tagger":
        """
        Allocates the lattice for ``sequence``.

        Args:
            sequence: The sequence to decode.
            feature_index: The index that will build features for this tagger.
                           When given, its label count must match.
        """
        self._require(TaggerState.UNINITIALIZED, "read")
        if feature_index is not None and feature_index.label_count != self.label_count:
            raise ValueError(
                f"Tagger has {self.label_count} labels but the feature index has {feature_index.label_count}"
            )
        n, L = len(sequence), self.label_count
        self._rows = tuple(t.tags for t in sequence)
        self.node_cost = np.zeros((n, L), dtype=np.float64)
        self.edge_cost = np.zeros((n, L, L), dtype=np.float64)
        self._score = np.zeros((n, L), dtype=np.float64)
        self._backptr = np.zeros((n, L), dtype=np.int64)
        self.state = TaggerState.READ
        return self

    @property
    def rows(self) -> Tuple[Tuple[str, ...], ...]:
        if self.state is TaggerState.UNINITIALIZED:
            raise IllegalStateError("rows requested before read")
        return self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def attach_features(self, node_ids: Seq[List[int]], edge_ids: Seq[List[int]]) -> None:
        """Stores the active feature IDs of every position; called by `FeatureIndex`."""
        self._require(TaggerState.READ, "attach_features")
        if len(node_ids) != len(self._rows) or len(edge_ids) != len(self._rows):
            raise ValueError("Feature lists must cover every position of the sequence")
        self._node_ids = [list(ids) for ids in node_ids]
        self._edge_ids = [list(ids) for ids in edge_ids]
        self.state = TaggerState.FEATURES_BUILT

    def _build_lattice(self, alpha: np.ndarray) -> None:
        L = self.label_count
        node_offsets = np.arange(L)
        edge_offsets = np.arange(L * L)
        for i, ids in enumerate(self._node_ids):
            if ids:
                idx = np.asarray(ids, dtype=np.int64)[:, None] + node_offsets
                self.node_cost[i] = alpha[idx].sum(axis=0)
        for i, ids in enumerate(self._edge_ids):
            if i == 0 or not ids:
                continue
            idx = np.asarray(ids, dtype=np.int64)[:, None] + edge_offsets
            self.edge_cost[i] = self.cost_factor * alpha[idx].sum(axis=0).reshape(L, L)

    def parse(self, alpha: np.ndarray) -> "Tagger":
        """
        Runs Viterbi decoding over the lattice.

        The forward pass keeps, for every ``(position, label)``, the best
        cumulative score over all previous labels plus the edge and node scores,
        recording the argmax previous label as a backpointer. The backward pass
        starts from the best final label and follows the backpointers. Ties go
        to the lowest label index.

        Args:
            alpha: The model's weight vector.
        """
        self._require(TaggerState.FEATURES_BUILT, "parse")
        n = len(self._rows)
        if n == 0:
            self._result = np.zeros(0, dtype=np.int64)
            self.best_score = 0.0
            self.state = TaggerState.PARSED
            return self

        self._build_lattice(alpha)
        score, backptr = self._score, self._backptr
        score[0] = self.node_cost[0]
        cols = np.arange(self.label_count)
        for i in range(1, n):
            # cand[p, y]: best path ending in p at i-1, then moving to y at i
            cand = score[i - 1][:, None] + self.edge_cost[i]
            best_prev = np.argmax(cand, axis=0)
            backptr[i] = best_prev
            score[i] = cand[best_prev, cols] + self.node_cost[i]

        result = np.zeros(n, dtype=np.int64)
        result[-1] = int(np.argmax(score[-1]))
        for i in range(n - 1, 0, -1):
            result[i - 1] = backptr[i, result[i]]
        self._result = result
        self.best_score = float(score[-1, result[-1]])
        self.state = TaggerState.PARSED
        return self

    def result(self, position: int) -> int:
        """
        Returns the decoded label index at ``position``.

        Raises:
            IllegalStateError: If `parse` has not run.
            IndexError: If ``position`` is outside ``0 .. len - 1``.
        """
        self._require(TaggerState.PARSED, "result")
        if not 0 <= position < len(self._result):
            raise IndexError(f"position {position} out of range for a sequence of length {len(self._result)}")
        return int(self._result[position])

    def results(self) -> List[int]:
        self._require(TaggerState.PARSED, "results")
        return [int(y) for y in self._result]

    def _forward_backward(self) -> Tuple[np.ndarray, np.ndarray, float]:
        if self._fb is not None:
            return self._fb
        n, L = len(self._rows), self.label_count
        fwd = np.empty((n, L))
        bwd = np.zeros((n, L))
        fwd[0] = self.node_cost[0]
        for i in range(1, n):
            fwd[i] = _logsumexp(fwd[i - 1][:, None] + self.edge_cost[i], axis=0) + self.node_cost[i]
        for i in range(n - 2, -1, -1):
            bwd[i] = _logsumexp(self.edge_cost[i + 1] + (self.node_cost[i + 1] + bwd[i + 1])[None, :], axis=1)
        log_z = float(_logsumexp(fwd[-1], axis=0))
        self._fb = (fwd, bwd, log_z)
        return self._fb

    def marginals(self) -> np.ndarray:
        """
        Returns the ``(n, L)`` matrix of per-position label probabilities.

        Uses the same node and edge scores as the decode, so the cost factor
        shapes the distribution as well.
        """
        self._require(TaggerState.PARSED, "marginals")
        if not self._rows:
            return np.zeros((0, self.label_count))
        fwd, bwd, log_z = self._forward_backward()
        return np.exp(fwd + bwd - log_z)

    def sequence_prob(self) -> float:
        """Returns the conditional probability of the decoded path."""
        self._require(TaggerState.PARSED, "sequence_prob")
        if not self._rows:
            return 1.0
        _, _, log_z = self._forward_backward()
        return float(math.exp(self.best_score - log_z))
