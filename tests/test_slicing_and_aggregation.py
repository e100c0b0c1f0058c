import polars as pl
import pytest

from uk_baci_trade_analysis.analysis.aggregation import (
    entity_totals,
    entity_year_series,
    top_n_entities,
    trade_balance,
    wide_matrix,
    yearly_totals,
)
from uk_baci_trade_analysis.etl.slicing import split_by_country


@pytest.fixture
def trade_lf() -> pl.LazyFrame:
    """Normalised trade with the UK on both sides."""
    return pl.LazyFrame(
        {
            "year": [2000, 2000, 2001, 2001, 2000, 2001, 2002, 2000],
            "exporter": ["United Kingdom", "United Kingdom", "United Kingdom", "United Kingdom", "France", "Germany", "Germany", "France"],
            "importer": ["France", "Germany", "France", "Germany", "United Kingdom", "United Kingdom", "United Kingdom", "Germany"],
            "product": ["Vehicles", "Petroleum Products", "Vehicles", "Vehicles", "Wine", "Vehicles", "Vehicles", "Wine"],
            "value": [10.0, 5.0, 12.0, 6.0, 3.0, 8.0, 9.0, 100.0],
            "quantity": [1.0] * 8,
        }
    )


def test_split_by_country(trade_lf):
    exports_lf, imports_lf = split_by_country(trade_lf, "United Kingdom")
    exports_df = exports_lf.collect()
    imports_df = imports_lf.collect()

    assert exports_df.height == 4
    assert set(exports_df["exporter"].to_list()) == {"United Kingdom"}
    assert imports_df.height == 3
    assert set(imports_df["importer"].to_list()) == {"United Kingdom"}
    # Third-country flows are in neither view
    assert exports_df["value"].sum() + imports_df["value"].sum() == pytest.approx(53.0)


def test_split_requires_country(trade_lf):
    with pytest.raises(ValueError):
        split_by_country(trade_lf, "")


def test_yearly_totals(trade_lf):
    exports_lf, _ = split_by_country(trade_lf)
    df = yearly_totals(exports_lf)
    assert df["year"].to_list() == [2000, 2001]
    assert df["total_value"].to_list() == pytest.approx([15.0, 18.0])


def test_trade_balance_fills_missing_years(trade_lf):
    exports_lf, imports_lf = split_by_country(trade_lf)
    df = trade_balance(exports_lf, imports_lf)

    assert df["year"].to_list() == [2000, 2001, 2002]
    assert df["exports"].to_list() == pytest.approx([15.0, 18.0, 0.0])
    assert df["imports"].to_list() == pytest.approx([3.0, 8.0, 9.0])
    assert df["balance"].to_list() == pytest.approx([12.0, 10.0, -9.0])


def test_top_n_entities_order_and_limit(trade_lf):
    exports_lf, _ = split_by_country(trade_lf)
    assert top_n_entities(exports_lf, "importer", n=1) == ["France"]
    assert top_n_entities(exports_lf, "product", n=5) == ["Vehicles", "Petroleum Products"]


def test_top_n_entities_breaks_ties_by_name():
    lf = pl.LazyFrame({"product": ["b", "a", "c", None], "value": [5.0, 5.0, 1.0, 50.0]})
    assert top_n_entities(lf, "product", n=3) == ["a", "b", "c"]


def test_top_n_entities_rejects_bad_n(trade_lf):
    with pytest.raises(ValueError):
        top_n_entities(trade_lf, "product", n=0)


def test_entity_totals_restricted(trade_lf):
    _, imports_lf = split_by_country(trade_lf)
    df = entity_totals(imports_lf, "exporter", ["Germany"])
    assert df.rows() == [("Germany", 17.0)]


def test_entity_year_series(trade_lf):
    exports_lf, _ = split_by_country(trade_lf)
    df = entity_year_series(exports_lf, "importer", ["France", "Germany"])
    assert df.rows() == [
        ("France", 2000, 10.0),
        ("France", 2001, 12.0),
        ("Germany", 2000, 5.0),
        ("Germany", 2001, 6.0),
    ]


def test_wide_matrix_zero_fill_and_year_order():
    series_df = pl.DataFrame(
        {
            "importer": ["A", "B", "B"],
            "year": [2002, 2001, 2002],
            "value": [4.0, 1.0, 2.0],
        }
    )
    wide_df = wide_matrix(series_df, "importer")

    assert wide_df.columns == ["importer", "2001", "2002"]
    assert wide_df.rows() == [("A", 0.0, 4.0), ("B", 1.0, 2.0)]


def test_wide_matrix_sums_duplicates():
    series_df = pl.DataFrame({"product": ["A", "A"], "year": [2001, 2001], "value": [1.0, 2.5]})
    assert wide_matrix(series_df, "product").rows() == [("A", 3.5)]


def test_wide_matrix_empty():
    series_df = pl.DataFrame(schema={"product": pl.Utf8, "year": pl.Int64, "value": pl.Float64})
    assert wide_matrix(series_df, "product").is_empty()
