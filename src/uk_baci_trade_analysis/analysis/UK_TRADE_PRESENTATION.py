import marimo

__generated_with = "0.13.6"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    import polars as pl

    from uk_baci_trade_analysis.analysis.aggregation import (
        entity_totals,
        entity_year_series,
        top_n_entities,
        trade_balance,
    )
    from uk_baci_trade_analysis.analysis.clustering import ENTITY_KINDS, cluster_top_entities
    from uk_baci_trade_analysis.pipeline import KIND_TITLES, get_config, load_country_views
    from uk_baci_trade_analysis.utils.converters import shorten_label, with_short_country_labels
    from uk_baci_trade_analysis.visualise import figures
    from uk_baci_trade_analysis.visualise.network import build_network
    return (
        ENTITY_KINDS,
        KIND_TITLES,
        build_network,
        cluster_top_entities,
        entity_totals,
        entity_year_series,
        figures,
        get_config,
        load_country_views,
        mo,
        pl,
        shorten_label,
        top_n_entities,
        trade_balance,
        with_short_country_labels,
    )


@app.cell
def _(get_config, mo):
    # Arguments passed after `--` on the marimo command line
    cli_args = mo.cli_args()
    config = get_config(
        data_dir=cli_args.get("data-dir"),
        country=cli_args.get("country"),
        top_n=int(cli_args["top-n"]) if cli_args.get("top-n") else None,
        max_files=int(cli_args["max-files"]) if cli_args.get("max-files") else None,
    )
    config
    return (config,)


@app.cell(hide_code=True)
def _(config, mo):
    mo.md(
        f"""
    # {config["country"]} in world trade

    Bilateral trade flows from CEPII BACI (HS92), first {config["max_files"]} yearly files.

    1. Exports, imports and the trade balance
    2. Top {config["top_n"]} partners and products
    3. Which partners and products move together: k-means clusters and correlation networks
    """
    )
    return


@app.cell
def _(config, load_country_views):
    exports_lf, imports_lf = load_country_views(config)
    return exports_lf, imports_lf


@app.cell(hide_code=True)
def _(config, exports_lf, figures, imports_lf, mo, trade_balance):
    balance_df = trade_balance(exports_lf, imports_lf)
    mo.vstack(
        [
            mo.md("## Trade balance"),
            figures.trade_balance_chart(balance_df, f"{config['country']}: exports, imports and balance"),
        ]
    )
    return


@app.cell
def _(
    ENTITY_KINDS,
    KIND_TITLES,
    config,
    entity_totals,
    entity_year_series,
    exports_lf,
    imports_lf,
    pl,
    shorten_label,
    top_n_entities,
    with_short_country_labels,
):
    # Every slide recomputes its own top-N from the view it shows
    views = {"exports": exports_lf, "imports": imports_lf}
    slide_data = {}
    for _kind, (_view, _entity_col) in ENTITY_KINDS.items():
        _top = top_n_entities(views[_view], _entity_col, n=config["top_n"])
        _totals = entity_totals(views[_view], _entity_col, _top)
        _series = entity_year_series(views[_view], _entity_col, _top)
        # Short text goes in a separate display column; charts still group by the full name
        if _entity_col == "product":
            _short = pl.col("product").map_elements(shorten_label, return_dtype=pl.Utf8).alias("label")
            _totals = _totals.with_columns(_short)
            _series = _series.with_columns(_short)
        else:
            _totals = with_short_country_labels(_totals, _entity_col)
        slide_data[_kind] = {
            "entity_col": _entity_col,
            "title": KIND_TITLES[_kind],
            "totals": _totals,
            "series": _series,
        }
    return slide_data, views


@app.cell(hide_code=True)
def _(figures, mo, slide_data):
    mo.vstack(
        [mo.md("## Partners")]
        + [
            mo.hstack(
                [
                    figures.top_n_bar_chart(slide_data[_kind]["totals"], slide_data[_kind]["entity_col"], slide_data[_kind]["title"], label_col="label"),
                    figures.area_chart(slide_data[_kind]["series"], slide_data[_kind]["entity_col"], f"{slide_data[_kind]['title']} by year"),
                ]
            )
            for _kind in ("export_partner", "import_partner")
        ]
    )
    return


@app.cell(hide_code=True)
def _(figures, mo, slide_data):
    mo.vstack(
        [mo.md("## Products")]
        + [
            mo.hstack(
                [
                    figures.treemap(slide_data[_kind]["totals"], "product", slide_data[_kind]["title"], label_col="label"),
                    figures.area_chart(slide_data[_kind]["series"], "product", f"{slide_data[_kind]['title']} by year", label_col="label"),
                ]
            )
            for _kind in ("export_product", "import_product")
        ]
    )
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
    ## Methodology: clusters and correlation networks

    For each of export partners, import partners, exported products and imported products:

    1. Take the top 10 by total value and pivot to one row per entity, one column per year (missing years are 0).
    2. Standardise each **year column** across entities, then run k-means with k = 4 and a fixed seed.
    3. Correlate the raw yearly series pair by pair. Pairs above 0.8 are linked.
       Constant series have no defined correlation and are never linked.
    """
    )
    return


@app.cell
def _(ENTITY_KINDS, cluster_top_entities, config, exports_lf, imports_lf):
    cluster_results = {
        _kind: cluster_top_entities(
            exports_lf,
            imports_lf,
            _kind,
            n=config["top_n"],
            k=config["k"],
            seed=config["seed"],
            threshold=config["correlation_threshold"],
        )
        for _kind in ENTITY_KINDS
    }
    return (cluster_results,)


@app.cell(hide_code=True)
def _(
    ENTITY_KINDS,
    KIND_TITLES,
    build_network,
    cluster_results,
    entity_year_series,
    figures,
    mo,
    views,
):
    _slides = []
    for _kind, _result in cluster_results.items():
        _view, _entity_col = ENTITY_KINDS[_kind]
        _series = entity_year_series(views[_view], _entity_col, _result.assignments[_entity_col].to_list())
        _slides.append(
            mo.vstack(
                [
                    mo.md(f"## {KIND_TITLES[_kind]}: clusters"),
                    figures.cluster_series_chart(_series, _result, f"{KIND_TITLES[_kind]}: k-means clusters"),
                    mo.hstack(
                        [
                            figures.correlation_heatmap(_result, "Correlation of yearly values"),
                            mo.iframe(build_network(_result.graph).generate_html(), height="600px"),
                        ]
                    ),
                ]
            )
        )
    mo.vstack(_slides)
    return


if __name__ == "__main__":
    app.run()
