import numpy as np
import pytest

from concept_weights.metrics import (
    RECALL_LEVELS,
    average_precision,
    evaluate_rankings,
    mean_average_precision,
    mean_reciprocal_rank,
    precision_at_k,
    precision_recall_table,
    recall_at_k,
    reciprocal_rank,
)


@pytest.mark.parametrize(
    "relevant, retrieved, k, precision, recall",
    [
        ([1, 2], [1, 3, 2], 1, 1.0, 0.5),
        ([1, 2], [1, 3, 2], 2, 0.5, 0.5),
        ([1, 2], [3, 4], 2, 0.0, 0.0),
        ([], [3, 4], 2, 0.0, 0.0),
    ],
)
def test_cutoff_metrics(relevant, retrieved, k, precision, recall):
    relevant, retrieved = np.array(relevant), np.array(retrieved)
    assert precision_at_k(relevant, retrieved, k) == pytest.approx(precision)
    assert recall_at_k(relevant, retrieved, k) == pytest.approx(recall)


def test_rank_metrics():
    relevant = np.array([1, 2])
    retrieved = np.array([3, 1, 2])
    assert average_precision(relevant, retrieved) == pytest.approx((1 / 2 + 2 / 3) / 2)
    assert reciprocal_rank(relevant, retrieved) == pytest.approx(0.5)
    runs = [(relevant, retrieved), (relevant, np.array([1, 2]))]
    assert mean_average_precision(runs) == pytest.approx(((1 / 2 + 2 / 3) / 2 + 1.0) / 2)
    assert mean_reciprocal_rank(runs) == pytest.approx(0.75)
    assert mean_average_precision([]) == 0.0


def test_precision_recall_table():
    table = precision_recall_table(np.array([1, 2]), np.array([1, 3, 2]))
    assert len(table) == len(RECALL_LEVELS) == 20
    assert RECALL_LEVELS[0] == 0.0
    assert RECALL_LEVELS[-1] == pytest.approx(0.95)
    # Recall 0.5 is reached at precision 1, recall 1.0 at precision 2/3.
    assert table[0] == 1.0
    assert table[5] == 1.0
    assert table[12] == pytest.approx(2 / 3)
    assert table[-1] == pytest.approx(2 / 3)


def test_precision_recall_table_with_unretrieved_relevant():
    table = precision_recall_table(np.array([1, 2, 3]), np.array([1, 2, 4]))
    assert table[0] == 1.0
    assert table[13] == 1.0  # 0.65 <= 2/3
    assert table[14] == 0.0  # 0.70 is never reached


class TestEvaluateRankings:
    @pytest.fixture
    def report(self):
        relevance = {-1: {10: 1, 20: 1, 50: 1}, -2: {}}
        rsv = [
            (-1, 10, 0.9),
            (-1, 30, 0.5),
            (-1, 20, 0.5),
            (-1, 40, 0.1),
            (-2, 10, 0.4),
        ]
        return evaluate_rankings(relevance, rsv)

    def test_only_queries_with_relevant_documents_count(self, report):
        assert [q.query for q in report.queries] == [-1]

    def test_ties_rank_smaller_id_first(self, report):
        np.testing.assert_array_equal(report.queries[0].ranking, [10, 20, 30, 40])

    def test_diagnostics(self, report):
        query = report.queries[0]
        assert query.retrieved == 4
        assert query.relevant == 3
        assert query.first_nonrelevant_rank == 3
        assert query.first_nonrelevant == 30
        assert query.worst_relevant == [(2, 20), (1, 10)]
        assert query.best_nonrelevant == [(3, 30), (4, 40)]
        assert query.unretrieved == [50]
        assert query.precision_at(2) == 1.0
        assert query.recall_at(2) == pytest.approx(2 / 3)

    def test_curve(self, report):
        # Recall 2/3 is reached with precision 1; recall above that never.
        expected = np.where(RECALL_LEVELS <= 2 / 3, 1.0, 0.0)
        np.testing.assert_allclose(report.precision, expected)
        assert report.curve_sum == pytest.approx(expected.sum())
        assert report.mean_average_precision == pytest.approx(2 / 3)
        assert report.mean_reciprocal_rank == 1.0

    def test_format(self, report):
        text = report.format()
        assert text.startswith("QUERY 1 - total 4, relevant 3, 1st nonrel = 3. 30\n")
        assert "RSV zero:  50  " in text
        assert "Global average for 1 queries" in text
        assert f"Curve sum = {report.curve_sum:f}" in text


def test_empty_report():
    report = evaluate_rankings({}, [])
    assert report.queries == []
    assert report.curve_sum == 0.0
