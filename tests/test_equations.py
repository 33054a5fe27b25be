import numpy as np
import pytest

from concept_weights.collection import DocumentTable, WeightTable
from concept_weights.config import OptimizerConfig
from concept_weights.equations import (
    NOT_OPTIMIZED,
    ColumnMap,
    EquationBuilder,
    assign_columns,
    dot_product,
)
from concept_weights.errors import DanglingReferenceError
from concept_weights.matrix import RowKind, RowRef
from concept_weights.preferences import Preference, PreferenceKind

EPS = 1e-5


def _table(vectors):
    table = DocumentTable()
    for doc_id, concepts in vectors.items():
        doc = table.add(doc_id)
        for concept, weight in concepts.items():
            doc.add(concept, weight)
    return table


@pytest.fixture
def documents():
    return _table(
        {
            -1: {1: 1.0, 2: 1.0, 3: 1.0},
            10: {1: 1.0, 3: 2.0},
            20: {2: 1.0},
            30: {4: 1.0},
        }
    )


@pytest.fixture
def idf():
    return WeightTable([(1, 1.0), (2, 2.0), (3, 0.5), (4, 1.0)])


@pytest.fixture
def config():
    return OptimizerConfig(epsilon=EPS, show_progress=False)


UNSATISFIED = Preference(PreferenceKind.UNSATISFIED, -1, 10, 20)
SATISFIED = Preference(PreferenceKind.SATISFIED, -1, 20, 30)
NO_OVERLAP = Preference(PreferenceKind.SATISFIED, -1, 30, 30)
COST_ONLY = Preference(PreferenceKind.COST_ONLY, -1, 10, 20)


def test_columns_follow_first_appearance(documents):
    columns = assign_columns([UNSATISFIED], documents)
    assert columns.by_column() == [1, 3, 2]
    assert columns.column(3) == 1
    assert columns.column(4) == NOT_OPTIMIZED
    assert [atom.concept for atom in columns.by_concept()] == [1, 2, 3]
    assert columns.concept(2) == 2


def test_satisfied_preferences_do_not_select_columns(documents):
    assert len(assign_columns([SATISFIED], documents)) == 0


def test_unknown_document_in_preference(documents):
    with pytest.raises(DanglingReferenceError):
        assign_columns([Preference(PreferenceKind.UNSATISFIED, -1, 10, 99)], documents)


def test_dot_product_of_vector_with_itself(documents, idf):
    columns = ColumnMap()
    for concept in (1, 2, 3):
        columns.add(concept)
    query = documents.require(-1)
    doc = documents.require(10)
    product = dot_product(doc, doc, columns, idf)
    np.testing.assert_allclose(product.coefficients, [1.0, 0.0, 4.0])
    assert product.constant == 0.0
    assert dot_product(query, doc, columns, idf).has_optimized_overlap


def test_dot_product_folds_fixed_concepts_into_constant(documents, idf):
    columns = ColumnMap()
    columns.add(1)
    product = dot_product(documents.require(-1), documents.require(10), columns, idf)
    np.testing.assert_allclose(product.coefficients, [1.0])
    # concept 3: 1.0 * 2.0 * idf 0.5
    assert product.constant == pytest.approx(1.0)


def test_build_rows(documents, idf, config):
    columns = assign_columns([UNSATISFIED], documents)
    builder = EquationBuilder(documents, columns, idf, config)

    unsatisfied = builder.build_row(UNSATISFIED)
    np.testing.assert_allclose(unsatisfied.values, [1.0, 2.0, -1.0, EPS])

    satisfied = builder.build_row(SATISFIED)
    np.testing.assert_allclose(satisfied.values, [0.0, 0.0, -1.0, -EPS])

    assert builder.build_row(NO_OVERLAP) is None


def test_build_matrix(documents, idf, config):
    prefs = [UNSATISFIED, SATISFIED, NO_OVERLAP, COST_ONLY]
    columns = assign_columns(prefs, documents)
    builder = EquationBuilder(documents, columns, idf, config)
    matrix = builder.build(prefs)

    assert builder.summary.stored == 2
    assert builder.summary.dropped == 1
    assert builder.summary.cost_only == 1
    assert matrix.count(RowKind.RSV) == 2
    assert matrix.n_constraints == 2 + 2 * 3

    # Unsatisfied and cost-only rows are both subtracted from the cost.
    np.testing.assert_allclose(matrix.cost_row, [-2.0, -4.0, 2.0, -2 * EPS])

    initial = builder.initial_solution()
    np.testing.assert_allclose(initial, [1.0, 0.5, 2.0])
    np.testing.assert_allclose(matrix.block(RowKind.LOWER_BOUND)[:, -1], -0.5 * initial)
    np.testing.assert_allclose(matrix.block(RowKind.UPPER_BOUND)[:, -1], 2.0 * initial)
    np.testing.assert_allclose(matrix.block(RowKind.TRANSLATION)[:, :-1], np.eye(3))
    np.testing.assert_allclose(matrix.block(RowKind.TRANSLATION)[:, -1], initial)

    # Bounds hold at the IDF starting point.
    assert (matrix.evaluate(initial, RowKind.LOWER_BOUND) >= 0).all()
    assert (matrix.evaluate(initial, RowKind.UPPER_BOUND) >= 0).all()
    assert matrix.coefficient(RowRef(RowKind.UPPER_BOUND, 1), 1) == -1.0


def test_missing_idf_for_optimized_concept(documents, config):
    columns = assign_columns([UNSATISFIED], documents)
    with pytest.raises(DanglingReferenceError):
        EquationBuilder(documents, columns, WeightTable([(1, 1.0)]), config)


def test_missing_idf_for_fixed_concept(documents, config):
    columns = ColumnMap()
    columns.add(1)
    builder = EquationBuilder(documents, columns, WeightTable([(1, 1.0)]), config)
    with pytest.raises(DanglingReferenceError):
        builder.build_row(UNSATISFIED)
