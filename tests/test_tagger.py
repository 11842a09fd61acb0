import sys
import unittest
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from crftagger.errors import IllegalStateError
from crftagger.feature_index import FeatureIndex
from crftagger.model_builder import build_model
from crftagger.tagger import Tagger, TaggerState
from crftagger.types import Sequence

LABELS = ("N", "V")
WEIGHTS = {
    "U00:the": [1.0, 0.0],
    "U00:dog": [2.0, 0.0],
    "U00:runs": [0.0, 2.0],
    "U01:_B-1": [0.5, 0.0],
    "B": [-1.0, 1.0, 0.5, -1.0],
}


def make_words(*ws: str) -> Sequence:
    return Sequence.of([(w,) for w in ws])


def run_tagger(model, seq: Sequence, cost_factor: float = 1.0) -> Tagger:
    index = FeatureIndex().read_model(model)
    tagger = Tagger(index.label_count)
    tagger.set_cost_factor(cost_factor)
    tagger.read(seq, index)
    index.build_features(tagger)
    return tagger.parse(index.alpha)


class TestViterbi(unittest.TestCase):
    def setUp(self):
        self.model = build_model(LABELS, ("U00:%x[0,0]", "U01:%x[-1,0]"), ("B",), WEIGHTS)

    def test_best_path_and_score(self):
        tagger = run_tagger(self.model, make_words("the", "dog", "runs"))

        # node scores: [1.5, 0], [2, 0], [0, 2]; edges N->N then N->V
        self.assertEqual(tagger.results(), [0, 0, 1])
        self.assertAlmostEqual(tagger.best_score, 1.5 - 1.0 + 2.0 + 1.0 + 2.0)
        self.assertEqual(tagger.result(2), 1)

    def test_lattice_potentials(self):
        tagger = run_tagger(self.model, make_words("the", "dog"), cost_factor=2.0)

        np.testing.assert_allclose(tagger.node_cost, [[1.5, 0.0], [2.0, 0.0]])
        np.testing.assert_allclose(tagger.edge_cost[1], [[-2.0, 2.0], [1.0, -2.0]])
        np.testing.assert_allclose(tagger.edge_cost[0], np.zeros((2, 2)))

    def test_ties_prefer_lowest_label_index(self):
        # N N and N V both score 3.5.
        tagger = run_tagger(self.model, make_words("dog", "dog"))

        self.assertEqual(tagger.results(), [0, 0])
        self.assertAlmostEqual(tagger.best_score, 3.5)

    def test_cost_factor_scales_edges_only(self):
        sharpened = run_tagger(self.model, make_words("dog", "dog"), cost_factor=3.0)
        flat = run_tagger(self.model, make_words("dog", "dog"), cost_factor=0.0)

        self.assertEqual(sharpened.results(), [0, 1])
        np.testing.assert_allclose(sharpened.node_cost, flat.node_cost)
        np.testing.assert_allclose(flat.edge_cost, 0.0)

    def test_zero_cost_factor_is_per_position_argmax(self):
        tagger = run_tagger(self.model, make_words("runs", "the", "runs", "dog"), cost_factor=0.0)

        expected = [int(np.argmax(row)) for row in tagger.node_cost]
        self.assertEqual(tagger.results(), expected)

    def test_result_rejects_out_of_range_positions(self):
        tagger = run_tagger(self.model, make_words("the", "dog"))

        with self.assertRaises(IndexError):
            tagger.result(-1)
        with self.assertRaises(IndexError):
            tagger.result(2)

    def test_empty_sequence_yields_empty_result(self):
        tagger = run_tagger(self.model, Sequence(()))

        self.assertEqual(tagger.results(), [])
        self.assertEqual(tagger.state, TaggerState.PARSED)
        self.assertEqual(tagger.sequence_prob(), 1.0)

    def test_marginals_are_distributions(self):
        tagger = run_tagger(self.model, make_words("the", "dog", "runs"))

        marg = tagger.marginals()

        self.assertEqual(marg.shape, (3, 2))
        np.testing.assert_allclose(marg.sum(axis=1), 1.0)
        prob = tagger.sequence_prob()
        self.assertTrue(0.0 < prob <= 1.0)
        self.assertTrue(np.all(prob <= marg[np.arange(3), tagger.results()] + 1e-12))

    def test_marginals_without_edges_are_softmax(self):
        tagger = run_tagger(self.model, make_words("the"))

        expected = np.exp([1.5, 0.0]) / np.exp([1.5, 0.0]).sum()
        np.testing.assert_allclose(tagger.marginals()[0], expected)
        self.assertAlmostEqual(tagger.sequence_prob(), expected[0])


class TestTaggerStateMachine(unittest.TestCase):
    def test_parse_before_features_fails(self):
        tagger = Tagger(2).read(make_words("a"))

        with self.assertRaises(IllegalStateError):
            tagger.parse(np.zeros(4))

    def test_result_before_parse_fails(self):
        tagger = Tagger(2)

        with self.assertRaises(IllegalStateError):
            tagger.result(0)
        with self.assertRaises(IllegalStateError):
            tagger.marginals()

    def test_read_twice_fails(self):
        tagger = Tagger(2).read(make_words("a"))

        with self.assertRaises(IllegalStateError):
            tagger.read(make_words("b"))

    def test_cost_factor_after_read_fails(self):
        tagger = Tagger(2).read(make_words("a"))

        with self.assertRaises(IllegalStateError):
            tagger.set_cost_factor(2.0)

    def test_invalid_cost_factor_is_rejected(self):
        for bad in (-1.0, float("nan"), float("inf")):
            with self.assertRaises(ValueError):
                Tagger(2).set_cost_factor(bad)

    def test_lattice_is_sized_by_sequence_and_labels(self):
        tagger = Tagger(3).read(make_words("a", "b", "c", "d"))

        self.assertEqual(tagger.node_cost.shape, (4, 3))
        self.assertEqual(tagger.edge_cost.shape, (4, 3, 3))
        self.assertEqual(len(tagger), 4)

    def test_label_count_must_match_index(self):
        model = build_model(LABELS, ("U00:%x[0,0]",), ("B",), {"U00:a": None})
        index = FeatureIndex().read_model(model)

        with self.assertRaises(ValueError):
            Tagger(3).read(make_words("a"), index)


if __name__ == "__main__":
    unittest.main()
