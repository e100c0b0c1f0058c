import argparse
import gc
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import plotly.graph_objects as go
import polars as pl

from uk_baci_trade_analysis.analysis.aggregation import (
    entity_totals,
    entity_year_series,
    top_n_entities,
    trade_balance,
)
from uk_baci_trade_analysis.analysis.clustering import (
    CORRELATION_THRESHOLD,
    DEFAULT_K,
    DEFAULT_SEED,
    ENTITY_KINDS,
    ClusterResult,
    cluster_top_entities,
)
from uk_baci_trade_analysis.etl.baci import DEFAULT_BACI_DIR, MAX_TRADE_FILES, load_baci
from uk_baci_trade_analysis.etl.normalise import (
    log_unmatched_country_codes,
    normalise_baci,
    rename_baci_columns,
    unmatched_country_codes,
)
from uk_baci_trade_analysis.etl.slicing import DEFAULT_FOCUS_COUNTRY, split_by_country
from uk_baci_trade_analysis.utils.logging_config import get_logger, setup_logging
from uk_baci_trade_analysis.visualise import figures
from uk_baci_trade_analysis.visualise.network import write_network_html

logger = get_logger(__name__)

KIND_TITLES = {
    "export_partner": "Export partners",
    "import_partner": "Import partners",
    "export_product": "Exported products",
    "import_product": "Imported products",
}


def get_config(**overrides) -> Dict[str, Any]:
    """Returns the run parameters, with any non-None keyword overrides applied."""
    config = {
        "data_dir": str(DEFAULT_BACI_DIR),
        "output_dir": "outputs/figures",
        "country": DEFAULT_FOCUS_COUNTRY,
        "top_n": 10,
        "k": DEFAULT_K,
        "seed": DEFAULT_SEED,
        "correlation_threshold": CORRELATION_THRESHOLD,
        "max_files": MAX_TRADE_FILES,
    }
    unknown = set(overrides) - set(config)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    config.update({key: value for key, value in overrides.items() if value is not None})
    return config


# --- Pipeline Steps ---


def load_country_views(config: Dict[str, Any]) -> Tuple[pl.LazyFrame, pl.LazyFrame]:
    """Loads, normalises and slices BACI into in-memory export / import views."""
    logger.info("--- Step 1: Loading and normalising BACI data ---")

    raw_lf, country_df, product_df = load_baci(config["data_dir"], max_files=config["max_files"])
    normalised_lf = normalise_baci(raw_lf, country_df, product_df, report_unmatched=False)
    unmatched_lf = unmatched_country_codes(rename_baci_columns(raw_lf), country_df)

    exports_lf, imports_lf = split_by_country(normalised_lf, config["country"])
    # One pass over the BACI files: the shared scan and join are planned once
    exports_df, imports_df, unmatched_df = pl.collect_all([exports_lf, imports_lf, unmatched_lf])
    log_unmatched_country_codes(unmatched_df["code"].to_list())

    # Only the sliced views are kept; release the rest
    del raw_lf, normalised_lf, unmatched_lf, exports_lf, imports_lf
    gc.collect()

    logger.info(f"{config['country']}: {exports_df.height} export rows, {imports_df.height} import rows")
    if exports_df.is_empty() and imports_df.is_empty():
        raise ValueError(f"No trade found for country '{config['country']}'. Check the country name.")

    logger.info("✅ Country views ready.")
    return exports_df.lazy(), imports_df.lazy()


def build_overview_figures(
    exports_lf: pl.LazyFrame, imports_lf: pl.LazyFrame, config: Dict[str, Any]
) -> Dict[str, go.Figure]:
    """Trade balance, top-N bars, area charts and treemaps."""
    logger.info("--- Step 2: Building overview slides ---")
    country = config["country"]
    top_n = config["top_n"]
    views = {"exports": exports_lf, "imports": imports_lf}

    figs = {
        "trade_balance": figures.trade_balance_chart(
            trade_balance(exports_lf, imports_lf), f"{country}: exports, imports and balance"
        )
    }

    for kind, (view, entity_col) in ENTITY_KINDS.items():
        lf = views[view]
        title = f"{country}: top {top_n} {KIND_TITLES[kind].lower()}"

        top = top_n_entities(lf, entity_col, n=top_n)
        totals_df = entity_totals(lf, entity_col, top)

        figs[f"{kind}_bar"] = figures.top_n_bar_chart(totals_df, entity_col, title)
        figs[f"{kind}_area"] = figures.area_chart(
            entity_year_series(lf, entity_col, top), entity_col, f"{title} by year"
        )
        if entity_col == "product":
            figs[f"{kind}_treemap"] = figures.treemap(totals_df, entity_col, title)

    logger.info(f"✅ Built {len(figs)} overview figures.")
    return figs


def run_clustering(
    exports_lf: pl.LazyFrame, imports_lf: pl.LazyFrame, config: Dict[str, Any]
) -> Dict[str, ClusterResult]:
    """Clusters and correlates the top-N entities of every kind."""
    logger.info("--- Step 3: Clustering top entities ---")

    results = {}
    for kind in ENTITY_KINDS:
        results[kind] = cluster_top_entities(
            exports_lf,
            imports_lf,
            kind,
            n=config["top_n"],
            k=config["k"],
            seed=config["seed"],
            threshold=config["correlation_threshold"],
        )
        logger.info(f"{kind}: cluster sizes {results[kind].assignments['cluster'].value_counts().sort('cluster').rows()}")

    logger.info("✅ Clustering complete.")
    return results


def build_cluster_figures(
    exports_lf: pl.LazyFrame,
    imports_lf: pl.LazyFrame,
    results: Dict[str, ClusterResult],
    config: Dict[str, Any],
) -> Dict[str, go.Figure]:
    views = {"exports": exports_lf, "imports": imports_lf}
    figs = {}
    for kind, result in results.items():
        view, entity_col = ENTITY_KINDS[kind]
        series_df = entity_year_series(views[view], entity_col, result.assignments[entity_col].to_list())
        label = KIND_TITLES[kind]

        figs[f"{kind}_correlation"] = figures.correlation_heatmap(result, f"{label}: correlation of yearly values")
        figs[f"{kind}_clusters"] = figures.cluster_series_chart(series_df, result, f"{label}: k-means clusters")
    return figs


def write_outputs(
    figs: Dict[str, go.Figure], results: Dict[str, ClusterResult], output_dir: str | Path
) -> Path:
    """Writes every figure and correlation network as standalone HTML."""
    logger.info("--- Step 4: Writing outputs ---")
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    for name, fig in figs.items():
        fig.write_html(output_dir / f"{name}.html")
        logger.debug(f"Wrote {name}.html")

    for kind, result in results.items():
        write_network_html(result.graph, output_dir / f"{kind}_network.html")

    logger.info(f"✅ Wrote {len(figs) + len(results)} files to `{output_dir}`")
    return output_dir


def run(config: Dict[str, Any]) -> Optional[Path]:
    """Runs every step; returns the output directory, or None if a step failed."""
    try:
        exports_lf, imports_lf = load_country_views(config)
    except Exception as e:
        logger.error(f"❌ Loading BACI data failed: {e}", exc_info=True)
        return None

    try:
        figs = build_overview_figures(exports_lf, imports_lf, config)
        results = run_clustering(exports_lf, imports_lf, config)
        figs.update(build_cluster_figures(exports_lf, imports_lf, results, config))
    except Exception as e:
        logger.error(f"❌ Analysis failed: {e}", exc_info=True)
        return None

    try:
        return write_outputs(figs, results, config["output_dir"])
    except Exception as e:
        logger.error(f"❌ Writing outputs failed: {e}", exc_info=True)
        return None


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="UK trade analysis over CEPII BACI")
    parser.add_argument("--data-dir", help="Directory holding the BACI CSVs and code tables")
    parser.add_argument("--output-dir", help="Directory for the HTML figures")
    parser.add_argument("--country", help="Focus country name as written in the BACI country table")
    parser.add_argument("--top-n", type=int, help="Number of top entities per slide")
    parser.add_argument("--max-files", type=int, help="Number of BACI trade files to read")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


# --- Main Execution ---
def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger.info("--- Starting UK BACI Trade Analysis Pipeline ---")
    config = get_config(
        data_dir=args.data_dir,
        output_dir=args.output_dir,
        country=args.country,
        top_n=args.top_n,
        max_files=args.max_files,
    )

    output_dir = run(config)
    if output_dir is None:
        logger.critical("Pipeline failed. Aborting.")
        sys.exit(1)

    logger.info("--- Pipeline Execution Finished Successfully ---")
    sys.exit(0)


if __name__ == "__main__":
    main()
