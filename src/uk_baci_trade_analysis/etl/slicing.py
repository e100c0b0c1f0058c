from typing import Tuple

import polars as pl

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_FOCUS_COUNTRY = "United Kingdom"


def exports_of(lf: pl.LazyFrame, country: str = DEFAULT_FOCUS_COUNTRY) -> pl.LazyFrame:
    """Rows where `country` is the exporter."""
    return lf.filter(pl.col("exporter") == country)


def imports_of(lf: pl.LazyFrame, country: str = DEFAULT_FOCUS_COUNTRY) -> pl.LazyFrame:
    """Rows where `country` is the importer."""
    return lf.filter(pl.col("importer") == country)


def split_by_country(
    lf: pl.LazyFrame, country: str = DEFAULT_FOCUS_COUNTRY
) -> Tuple[pl.LazyFrame, pl.LazyFrame]:
    """
    Splits normalised trade into the focus country's export and import views.

    Args:
        lf: Normalised trade (year, exporter, importer, product, value, quantity).
        country: Country name as decoded from the BACI country table.

    Returns:
        (exports LazyFrame, imports LazyFrame)
    """
    if not country:
        raise ValueError("A focus country name is required to slice the trade data.")

    logger.info(f"Slicing trade data into exports from and imports to '{country}'")
    return exports_of(lf, country), imports_of(lf, country)
