"""
Normalisation of raw BACI trade rows.

Turns the coded BACI layout (t, i, j, k, v, q) into named trade records
(year, exporter, importer, product, value, quantity):

1. Rename the raw columns.
2. Decode exporter / importer codes to country names (left join, unmatched -> null).
3. Decode product codes to descriptions, cut at the first colon.
4. Merge near-duplicate product families into one category (petroleum by default).
5. Re-aggregate by (year, exporter, importer, product).
"""

from typing import Dict, List

import polars as pl

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

RENAME_MAP = {
    "t": "year",
    "i": "exporter_code",
    "j": "importer_code",
    "k": "product_code",
    "v": "value",
    "q": "quantity",
}

GROUP_KEYS = ["year", "exporter", "importer", "product"]

PETROLEUM_CATEGORY = "Petroleum Products"

# Regex (polars / Rust syntax) -> merged product label
CATEGORY_MERGES: Dict[str, str] = {
    "(?i)petroleum": PETROLEUM_CATEGORY,
}


def rename_baci_columns(lf: pl.LazyFrame) -> pl.LazyFrame:
    """Renames the raw BACI columns and pads codes to their canonical widths."""
    return lf.rename(RENAME_MAP).with_columns(
        pl.col("exporter_code").cast(pl.Utf8).str.zfill(3),
        pl.col("importer_code").cast(pl.Utf8).str.zfill(3),
        pl.col("product_code").cast(pl.Utf8).str.zfill(6),
    )


def unmatched_country_codes(lf: pl.LazyFrame, country_df: pl.DataFrame) -> pl.LazyFrame:
    """Lazy single-column (`code`) frame of exporter/importer codes missing from the country table."""
    return (
        pl.concat(
            [
                lf.select(pl.col("exporter_code").alias("code")),
                lf.select(pl.col("importer_code").alias("code")),
            ]
        )
        .drop_nulls()
        .unique()
        .join(country_df.lazy().select(pl.col("country_code").alias("code")), on="code", how="anti")
        .sort("code")
    )


def log_unmatched_country_codes(unmatched: List[str]) -> List[str]:
    if unmatched:
        logger.warning(
            f"{len(unmatched)} country codes have no name and will decode to null: {unmatched[:20]}"
        )
    else:
        logger.info("All country codes resolved to a name.")
    return unmatched


def decode_country_codes(
    lf: pl.LazyFrame,
    country_df: pl.DataFrame,
    report_unmatched: bool = True,
) -> pl.LazyFrame:
    """
    Adds `exporter` and `importer` name columns via left joins on the country table.

    Codes missing from the table produce null names; the rows are kept.
    """
    if report_unmatched:
        log_unmatched_country_codes(unmatched_country_codes(lf, country_df).collect()["code"].to_list())

    country_lf = country_df.lazy().select("country_code", "country_name")

    return lf.join(
        country_lf.rename({"country_code": "exporter_code", "country_name": "exporter"}),
        on="exporter_code",
        how="left",
    ).join(
        country_lf.rename({"country_code": "importer_code", "country_name": "importer"}),
        on="importer_code",
        how="left",
    )


def truncate_description(column: str = "description") -> pl.Expr:
    """Keeps the part of a product description before the first colon."""
    return pl.col(column).str.split(":").list.first().str.strip_chars()


def decode_product_codes(lf: pl.LazyFrame, product_df: pl.DataFrame) -> pl.LazyFrame:
    """Adds a `product` label column: the HS description cut at its first colon."""
    product_lf = product_df.lazy().select(
        "product_code", truncate_description("description").alias("product")
    )
    return lf.join(product_lf, on="product_code", how="left")


def merge_categories(
    lf: pl.LazyFrame,
    merges: Dict[str, str] = CATEGORY_MERGES,
    column: str = "product",
) -> pl.LazyFrame:
    """Relabels every product matching one of the `merges` patterns to its merged label."""
    if not merges:
        return lf

    expr = None
    for pattern, label in merges.items():
        condition = pl.col(column).str.contains(pattern)
        expr = pl.when(condition).then(pl.lit(label)) if expr is None else expr.when(condition).then(pl.lit(label))

    return lf.with_columns(expr.otherwise(pl.col(column)).alias(column))


def aggregate_trade(lf: pl.LazyFrame, keys: List[str] = GROUP_KEYS) -> pl.LazyFrame:
    """
    Sums value and quantity by `keys`. Applying it twice changes nothing.

    Quantity stays null for a group whose quantities are all missing (BACI "NA").
    """
    return lf.group_by(keys).agg(
        pl.col("value").sum(),
        pl.when(pl.col("quantity").is_null().all())
        .then(None)
        .otherwise(pl.col("quantity").sum())
        .cast(pl.Float64)
        .alias("quantity"),
    )


def normalise_baci(
    raw_lf: pl.LazyFrame,
    country_df: pl.DataFrame,
    product_df: pl.DataFrame,
    merges: Dict[str, str] = CATEGORY_MERGES,
    report_unmatched: bool = True,
) -> pl.LazyFrame:
    """
    Runs the full normalisation chain over a raw BACI LazyFrame.

    Args:
        raw_lf: Raw BACI rows (t, i, j, k, v, q).
        country_df: Country table from `load_country_codes`.
        product_df: Product table from `load_product_codes`.
        merges: Category merge rules, pattern -> merged label.
        report_unmatched: Log country codes without a name (requires a collect).
            Pass False and use `unmatched_country_codes` to fold the check into a
            later `pl.collect_all`.

    Returns:
        LazyFrame with columns year, exporter, importer, product, value, quantity.
    """
    logger.info("Normalising BACI trade records")

    lf = rename_baci_columns(raw_lf)
    lf = decode_country_codes(lf, country_df, report_unmatched=report_unmatched)
    lf = decode_product_codes(lf, product_df)
    lf = merge_categories(lf, merges)

    normalised_lf = aggregate_trade(lf).select(GROUP_KEYS + ["value", "quantity"])

    logger.info(f"Normalisation planned. Output schema: {normalised_lf.collect_schema()}")
    return normalised_lf
