import itertools

import networkx as nx
import numpy as np
import polars as pl
import pytest

from uk_baci_trade_analysis.analysis.clustering import (
    CORRELATION_THRESHOLD,
    ENTITY_KINDS,
    cluster_and_correlate,
    cluster_top_entities,
    correlation_matrix,
    kmeans_labels,
    scale_columns,
)

YEARS = ["2001", "2002", "2003"]


def make_wide(entity_col: str, rows: dict) -> pl.DataFrame:
    """Builds a wide entity x year frame from {entity: [values per year]}."""
    n_years = len(next(iter(rows.values())))
    years = [str(2001 + i) for i in range(n_years)]
    data = {entity_col: list(rows)}
    for i, year in enumerate(years):
        data[year] = [float(v[i]) if v[i] is not None else None for v in rows.values()]
    return pl.DataFrame(data, schema={entity_col: pl.Utf8, **{y: pl.Float64 for y in years}})


@pytest.fixture
def random_wide() -> pl.DataFrame:
    rng = np.random.default_rng(42)
    values = rng.uniform(10, 1000, size=(10, 8))
    return make_wide("product", {f"product_{i}": list(row) for i, row in enumerate(values)})


@pytest.fixture
def example_wide() -> pl.DataFrame:
    # A and B move together, C is flat
    return make_wide(
        "importer",
        {"A": [10, 20, 30], "B": [12, 22, 29], "C": [5, 5, 5]},
    )


# --- Scaling ---
def test_scale_columns_standardises_each_year():
    values = np.array([[1.0, 10.0], [3.0, 30.0], [5.0, 20.0]])
    scaled = scale_columns(values)

    np.testing.assert_allclose(scaled.mean(axis=0), [0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(scaled.std(axis=0, ddof=1), [1.0, 1.0])
    np.testing.assert_allclose(scaled[:, 0], [-1.0, 0.0, 1.0])


def test_scale_columns_is_not_per_entity():
    values = np.array([[1.0, 2.0, 3.0], [10.0, 20.0, 30.0], [5.0, 5.0, 6.0]])
    scaled = scale_columns(values)
    per_entity = (values - values.mean(axis=1, keepdims=True)) / values.std(axis=1, ddof=1, keepdims=True)
    assert not np.allclose(scaled, per_entity)


def test_scale_columns_constant_column_is_zero():
    values = np.array([[1.0, 7.0], [2.0, 7.0], [4.0, 7.0]])
    scaled = scale_columns(values)
    assert not np.isnan(scaled).any()
    np.testing.assert_array_equal(scaled[:, 1], [0.0, 0.0, 0.0])


def test_scale_columns_single_row():
    np.testing.assert_array_equal(scale_columns(np.array([[3.0, 4.0]])), [[0.0, 0.0]])


# --- k-means ---
def test_every_entity_gets_one_of_k_labels(random_wide):
    result = cluster_and_correlate(random_wide, "product", k=4, seed=123)
    labels = result.labels()

    assert set(labels) == set(random_wide["product"].to_list())
    assert set(labels.values()) <= {1, 2, 3, 4}
    assert result.assignments.height == random_wide.height


def test_same_seed_same_assignments(random_wide):
    first = cluster_and_correlate(random_wide, "product", k=4, seed=7).labels()
    second = cluster_and_correlate(random_wide, "product", k=4, seed=7).labels()
    assert first == second


def test_total_value_is_row_sum(random_wide):
    result = cluster_and_correlate(random_wide, "product")
    expected = random_wide.select(pl.sum_horizontal(pl.exclude("product"))).to_series().to_list()
    np.testing.assert_allclose(result.assignments["total_value"].to_numpy(), expected)


def test_too_few_entities_raises(example_wide):
    with pytest.raises(ValueError, match="at least 4"):
        cluster_and_correlate(example_wide, "importer", k=4)


def test_too_few_distinct_series_raises():
    wide_df = make_wide("product", {"a": [1, 2, 3], "b": [1, 2, 3], "c": [4, 5, 9], "d": [9, 1, 1]})
    with pytest.raises(ValueError, match="distinct"):
        kmeans_labels(scale_columns(wide_df.drop("product").to_numpy()), k=4)


def test_empty_matrix_raises():
    with pytest.raises(ValueError, match="empty"):
        cluster_and_correlate(pl.DataFrame(schema={"product": pl.Utf8}), "product")


def test_missing_entity_column_raises(random_wide):
    with pytest.raises(ValueError):
        cluster_and_correlate(random_wide, "importer")


# --- Correlation graph ---
def test_example_scenario(example_wide):
    result = cluster_and_correlate(example_wide, "importer", k=2)
    G = result.graph

    assert set(G.nodes) == {"A", "B", "C"}
    assert G.has_edge("A", "B")
    assert G.degree("C") == 0
    assert G.number_of_edges() == 1

    assert result.correlation.loc["A", "B"] == pytest.approx(0.9948, abs=1e-3)
    assert np.isnan(result.correlation.loc["A", "C"])


def test_graph_node_attributes(example_wide):
    G = cluster_and_correlate(example_wide, "importer", k=2).graph
    assert G.nodes["A"]["total_value"] == pytest.approx(60.0)
    assert G.nodes["C"]["total_value"] == pytest.approx(15.0)
    assert G.nodes["A"]["cluster"] in {1, 2}
    assert isinstance(G.nodes["A"]["cluster"], int)


def test_edges_iff_correlation_above_threshold(random_wide):
    result = cluster_and_correlate(random_wide, "product", threshold=0.2)
    G = result.graph
    corr = np.corrcoef(random_wide.drop("product").to_numpy())
    entities = random_wide["product"].to_list()

    for (i, a), (j, b) in itertools.combinations(enumerate(entities), 2):
        assert G.has_edge(a, b) == (corr[i, j] > 0.2), (a, b, corr[i, j])


def test_graph_undirected_without_self_loops(random_wide):
    G = cluster_and_correlate(random_wide, "product", threshold=-1.0).graph

    assert not G.is_directed()
    assert nx.number_of_selfloops(G) == 0
    # Every distinct pair is linked exactly once
    n = G.number_of_nodes()
    assert G.number_of_edges() == n * (n - 1) // 2
    assert all(not data for _, _, data in G.edges(data=True))


def test_correlation_uses_pairwise_complete_years():
    wide_df = make_wide("product", {"a": [1, 2, 3, None], "b": [2, 4, 6, 100]})
    corr = correlation_matrix(wide_df, "product")
    assert corr.loc["a", "b"] == pytest.approx(1.0)


def test_default_threshold():
    assert CORRELATION_THRESHOLD == 0.8


# --- Top-N entry point ---
@pytest.fixture
def views():
    rows = []
    for year in range(2000, 2006):
        for p, partner in enumerate(["France", "Germany", "Spain", "Italy", "Japan", "China"]):
            for q, product in enumerate(["Vehicles", "Wine", "Gold", "Computers", "Medicaments"]):
                value = 100.0 * (p + 1) + 10.0 * (q + 1) * (year - 1999) + (p * q * year) % 7
                rows.append((year, "United Kingdom", partner, product, value, 1.0))
                rows.append((year, partner, "United Kingdom", product, value * (q + 2) / (p + 1), 1.0))
    df = pl.DataFrame(rows, schema=["year", "exporter", "importer", "product", "value", "quantity"], orient="row")
    return (
        df.filter(pl.col("exporter") == "United Kingdom").lazy(),
        df.filter(pl.col("importer") == "United Kingdom").lazy(),
    )


@pytest.mark.parametrize("kind", list(ENTITY_KINDS))
def test_cluster_top_entities(views, kind):
    exports_lf, imports_lf = views
    result = cluster_top_entities(exports_lf, imports_lf, kind, n=5, k=4)

    _, entity_col = ENTITY_KINDS[kind]
    assert result.entity_col == entity_col
    assert result.assignments.height == 5
    assert result.graph.number_of_nodes() == 5
    assert "United Kingdom" not in result.labels()


def test_cluster_top_entities_unknown_kind(views):
    with pytest.raises(ValueError, match="Unknown entity kind"):
        cluster_top_entities(*views, "re_export_partner")
