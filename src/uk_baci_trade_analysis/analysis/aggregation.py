"""
Per-slide aggregations over a sliced trade LazyFrame.

Each slide recomputes its own totals and top-N list from the trade view it is
given; nothing is shared between slides.
"""

from typing import List, Optional

import polars as pl

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TOP_N = 10


def yearly_totals(lf: pl.LazyFrame, value_col: str = "value") -> pl.DataFrame:
    """Total trade value per year, sorted by year."""
    return (
        lf.group_by("year")
        .agg(pl.col(value_col).sum().alias("total_value"))
        .sort("year")
        .collect()
    )


def trade_balance(exports_lf: pl.LazyFrame, imports_lf: pl.LazyFrame) -> pl.DataFrame:
    """
    Exports, imports and balance (exports - imports) per year.

    Years present on only one side count zero on the other.
    """
    exports_df = yearly_totals(exports_lf).rename({"total_value": "exports"})
    imports_df = yearly_totals(imports_lf).rename({"total_value": "imports"})

    return (
        exports_df.join(imports_df, on="year", how="full", coalesce=True)
        .with_columns(pl.col("exports").fill_null(0.0), pl.col("imports").fill_null(0.0))
        .with_columns((pl.col("exports") - pl.col("imports")).alias("balance"))
        .sort("year")
    )


def entity_totals(
    lf: pl.LazyFrame,
    entity_col: str,
    entities: Optional[List[str]] = None,
) -> pl.DataFrame:
    """
    Total value per entity, largest first (ties broken by name).

    Null entities (undecoded codes) are dropped.
    """
    filtered_lf = lf.filter(pl.col(entity_col).is_not_null())
    if entities is not None:
        filtered_lf = filtered_lf.filter(pl.col(entity_col).is_in(entities))

    return (
        filtered_lf.group_by(entity_col)
        .agg(pl.col("value").sum().alias("total_value"))
        .sort(["total_value", entity_col], descending=[True, False])
        .collect()
    )


def top_n_entities(lf: pl.LazyFrame, entity_col: str, n: int = DEFAULT_TOP_N) -> List[str]:
    """Names of the `n` highest-value entities in `entity_col`."""
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")

    top = entity_totals(lf, entity_col).head(n)[entity_col].to_list()
    logger.debug(f"Top {n} by '{entity_col}': {top}")
    return top


def entity_year_series(lf: pl.LazyFrame, entity_col: str, entities: List[str]) -> pl.DataFrame:
    """Long (entity, year, value) series for the given entities, sorted by entity then year."""
    return (
        lf.filter(pl.col(entity_col).is_in(entities))
        .group_by([entity_col, "year"])
        .agg(pl.col("value").sum())
        .sort([entity_col, "year"])
        .collect()
    )


def wide_matrix(
    series_df: pl.DataFrame,
    entity_col: str,
    year_col: str = "year",
    value_col: str = "value",
) -> pl.DataFrame:
    """
    Pivots a long series to wide format: one row per entity, one column per year.

    Year columns are named by the year and ordered ascending; missing
    (entity, year) combinations are filled with 0.
    """
    if series_df.is_empty():
        return pl.DataFrame(schema={entity_col: pl.Utf8})

    wide_df = series_df.pivot(
        on=year_col,
        index=entity_col,
        values=value_col,
        aggregate_function="sum",
    )

    year_columns = sorted((c for c in wide_df.columns if c != entity_col), key=int)
    return (
        wide_df.select([entity_col] + year_columns)
        .with_columns(pl.col(year_columns).fill_null(0.0).cast(pl.Float64))
        .sort(entity_col)
    )
