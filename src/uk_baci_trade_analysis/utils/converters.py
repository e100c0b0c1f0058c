from functools import lru_cache
from typing import Optional

import polars as pl
import pycountry


@lru_cache(maxsize=None)
def country_alpha_3(name: Optional[str]) -> Optional[str]:
    """Best-effort ISO alpha-3 code for a BACI country name, None if it can't be found."""
    if not name:
        return None
    try:
        return pycountry.countries.lookup(name).alpha_3
    except LookupError:
        pass

    try:
        matches = pycountry.countries.search_fuzzy(name)
    except LookupError:
        return None
    return matches[0].alpha_3 if matches else None


def with_short_country_labels(df: pl.DataFrame, country_col: str, label_col: str = "label") -> pl.DataFrame:
    """Adds an alpha-3 label column for chart axes, falling back to the full name."""
    return df.with_columns(
        pl.col(country_col)
        .map_elements(country_alpha_3, return_dtype=pl.Utf8, skip_nulls=True)
        .fill_null(pl.col(country_col))
        .alias(label_col)
    )


def shorten_label(label: Optional[str], max_len: int = 40) -> Optional[str]:
    """Truncates long product descriptions for chart labels."""
    if label is None or len(label) <= max_len:
        return label
    return label[: max_len - 1].rstrip() + "…"
