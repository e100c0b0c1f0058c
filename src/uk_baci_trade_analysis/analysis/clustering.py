"""
Clustering of top trade entities and the correlation graph built on top of it.

For one kind of entity (export partner, import partner, export product or
import product) the top-N entities are pivoted to a wide entity x year matrix,
standardised per year column, clustered with k-means and linked whenever
their raw yearly series correlate above a threshold.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import networkx as nx
import numpy as np
import pandas as pd
import polars as pl
from sklearn.cluster import KMeans

from uk_baci_trade_analysis.analysis.aggregation import (
    DEFAULT_TOP_N,
    entity_year_series,
    top_n_entities,
    wide_matrix,
)
from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_K = 4
DEFAULT_SEED = 123
CORRELATION_THRESHOLD = 0.8

# kind -> (trade view, entity column)
ENTITY_KINDS: Dict[str, Tuple[str, str]] = {
    "export_partner": ("exports", "importer"),
    "import_partner": ("imports", "exporter"),
    "export_product": ("exports", "product"),
    "import_product": ("imports", "product"),
}


@dataclass
class ClusterResult:
    """Output of `cluster_and_correlate` for one entity kind."""

    entity_col: str
    assignments: pl.DataFrame  # entity_col, cluster (1..k), total_value
    correlation: pd.DataFrame  # entity x entity Pearson matrix on raw series
    graph: nx.Graph

    def labels(self) -> Dict[str, int]:
        return dict(zip(self.assignments[self.entity_col], self.assignments["cluster"]))


def _split_wide(wide_df: pl.DataFrame, entity_col: str) -> Tuple[List[str], List[str], np.ndarray]:
    if entity_col not in wide_df.columns:
        raise ValueError(f"Column '{entity_col}' not found in wide matrix: {wide_df.columns}")

    year_columns = [c for c in wide_df.columns if c != entity_col]
    entities = wide_df[entity_col].to_list()
    if not year_columns:
        return entities, year_columns, np.empty((len(entities), 0))

    values = wide_df.select(year_columns).to_numpy().astype(float)
    return entities, year_columns, values


def scale_columns(values: np.ndarray) -> np.ndarray:
    """
    Standardises each column (year) across rows (entities).

    Uses the sample standard deviation. Constant columns are centred to 0
    rather than divided by zero.
    """
    values = np.asarray(values, dtype=float)
    if values.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {values.shape}")

    centred = values - values.mean(axis=0)
    if values.shape[0] < 2:
        return np.zeros_like(values)

    std = values.std(axis=0, ddof=1)
    constant = std == 0
    if constant.any():
        logger.warning(f"{int(constant.sum())} constant column(s) scaled to 0")

    return np.divide(centred, std, out=np.zeros_like(centred), where=~constant)


def kmeans_labels(scaled: np.ndarray, k: int = DEFAULT_K, seed: int = DEFAULT_SEED) -> np.ndarray:
    """Runs k-means on the rows of `scaled` and returns labels in 1..k."""
    n_rows = scaled.shape[0]
    if k < 1:
        raise ValueError(f"k must be positive, got {k}")
    if n_rows < k:
        logger.error(f"Cannot form {k} clusters from {n_rows} entities")
        raise ValueError(f"Need at least {k} entities to form {k} clusters, got {n_rows}")

    n_distinct = np.unique(scaled, axis=0).shape[0]
    if n_distinct < k:
        logger.error(f"Cannot form {k} clusters from {n_distinct} distinct series")
        raise ValueError(f"Need at least {k} distinct entity series to form {k} clusters, got {n_distinct}")

    model = KMeans(n_clusters=k, random_state=seed, n_init=10)
    return model.fit_predict(scaled) + 1


def correlation_matrix(wide_df: pl.DataFrame, entity_col: str) -> pd.DataFrame:
    """
    Pearson correlation between entities' raw yearly series.

    Missing years are excluded pair by pair. Constant series give NaN.
    """
    entities, year_columns, values = _split_wide(wide_df, entity_col)
    series = pd.DataFrame(values.T, index=year_columns, columns=entities)
    return series.corr(method="pearson", min_periods=2)


def correlation_graph(
    correlation: pd.DataFrame,
    clusters: Dict[str, int],
    totals: Dict[str, float],
    threshold: float = CORRELATION_THRESHOLD,
) -> nx.Graph:
    """
    Undirected graph linking entities whose correlation exceeds `threshold`.

    Every entity in `correlation` becomes a node with `cluster` and
    `total_value` attributes. Each unordered pair is checked once and pairs
    with an undefined (NaN) correlation are never linked.
    """
    entities = list(correlation.columns)

    G = nx.Graph()
    for entity in entities:
        G.add_node(entity, cluster=int(clusters[entity]), total_value=float(totals[entity]))

    undefined_pairs = 0
    for i, source in enumerate(entities):
        for target in entities[i + 1 :]:
            r = correlation.at[source, target]
            if pd.isna(r):
                undefined_pairs += 1
                continue
            if r > threshold:
                G.add_edge(source, target)

    if undefined_pairs:
        logger.warning(f"Skipped {undefined_pairs} pair(s) with undefined correlation")

    logger.debug(f"Correlation graph: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges")
    return G


def cluster_and_correlate(
    wide_df: pl.DataFrame,
    entity_col: str,
    k: int = DEFAULT_K,
    seed: int = DEFAULT_SEED,
    threshold: float = CORRELATION_THRESHOLD,
) -> ClusterResult:
    """
    Clusters a wide entity x year matrix and builds its correlation graph.

    Args:
        wide_df: One row per entity, one column per year (see `wide_matrix`).
        entity_col: Name of the entity column in `wide_df`.
        k: Number of k-means clusters.
        seed: Random seed for k-means.
        threshold: Correlation above which two entities are linked.

    Returns:
        ClusterResult with assignments, the correlation matrix and the graph.

    Raises:
        ValueError: If the matrix is empty or has fewer than k distinct entities.
    """
    entities, year_columns, values = _split_wide(wide_df, entity_col)
    if not entities or not year_columns:
        logger.error(f"Wide matrix for '{entity_col}' is empty: {wide_df.shape}")
        raise ValueError(f"Cannot cluster an empty matrix (shape {wide_df.shape})")

    logger.info(f"Clustering {len(entities)} '{entity_col}' entities over {len(year_columns)} years (k={k})")

    labels = kmeans_labels(scale_columns(values), k=k, seed=seed)
    totals = values.sum(axis=1)

    assignments = pl.DataFrame(
        {
            entity_col: entities,
            "cluster": labels.astype(np.int64),
            "total_value": totals,
        }
    )

    correlation = correlation_matrix(wide_df, entity_col)
    graph = correlation_graph(
        correlation,
        clusters=dict(zip(entities, labels)),
        totals=dict(zip(entities, totals)),
        threshold=threshold,
    )

    return ClusterResult(
        entity_col=entity_col,
        assignments=assignments,
        correlation=correlation,
        graph=graph,
    )


def cluster_top_entities(
    exports_lf: pl.LazyFrame,
    imports_lf: pl.LazyFrame,
    kind: str,
    n: int = DEFAULT_TOP_N,
    k: int = DEFAULT_K,
    seed: int = DEFAULT_SEED,
    threshold: float = CORRELATION_THRESHOLD,
) -> ClusterResult:
    """Selects the top-`n` entities of `kind` and runs `cluster_and_correlate` on them."""
    if kind not in ENTITY_KINDS:
        raise ValueError(f"Unknown entity kind '{kind}'. Choose from: {list(ENTITY_KINDS)}")

    view, entity_col = ENTITY_KINDS[kind]
    lf = exports_lf if view == "exports" else imports_lf

    top = top_n_entities(lf, entity_col, n=n)
    logger.info(f"Top {len(top)} entities for '{kind}': {top}")

    wide_df = wide_matrix(entity_year_series(lf, entity_col, top), entity_col)
    return cluster_and_correlate(wide_df, entity_col, k=k, seed=seed, threshold=threshold)
