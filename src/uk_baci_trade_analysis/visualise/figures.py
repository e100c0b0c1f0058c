"""
Plotly figure constructors for the presentation slides.

Every function takes the frame produced by the matching analysis function and
returns a figure; nothing here aggregates or writes files.
"""

from typing import Dict, Optional

import plotly.express as px
import plotly.graph_objects as go
import polars as pl

from uk_baci_trade_analysis.analysis.clustering import ClusterResult

VALUE_AXIS_TITLE = "Trade value, 000s USD"


def _display_labels(df: pl.DataFrame, entity_col: str, label_col: Optional[str]) -> Dict[str, str]:
    # entity -> text shown on the chart; grouping always stays on the entity itself
    if label_col is None:
        return {entity: entity for entity in df[entity_col].to_list()}
    return dict(df.select(entity_col, label_col).unique(subset=entity_col).iter_rows())


def area_chart(
    series_df: pl.DataFrame, entity_col: str, title: str, label_col: Optional[str] = None
) -> go.Figure:
    """
    Stacked area chart of yearly value per entity.

    One trace per distinct `entity_col` value. `label_col`, if given, only
    renames the traces in the legend.
    """
    fig = px.area(
        series_df.to_pandas(),
        x="year",
        y="value",
        color=entity_col,
        title=title,
    )
    if label_col is not None:
        labels = _display_labels(series_df, entity_col, label_col)
        fig.for_each_trace(lambda trace: trace.update(name=labels.get(trace.name, trace.name)))
    fig.update_layout(yaxis_title=VALUE_AXIS_TITLE, xaxis_title="Year", legend_title_text="")
    fig.update_xaxes(type="linear", dtick=1)
    return fig


def top_n_bar_chart(
    totals_df: pl.DataFrame, entity_col: str, title: str, label_col: Optional[str] = None
) -> go.Figure:
    """Horizontal bar chart of entity totals, largest at the top. Short labels go on the tick text only."""
    entities = totals_df[entity_col].to_list()
    fig = go.Figure(
        go.Bar(
            y=entities,
            x=totals_df["total_value"].to_list(),
            orientation="h",
            marker_color="rgb(0, 150, 136)",  # Teal
        )
    )
    fig.update_layout(
        title_text=title,
        height=max(400, totals_df.height * 40),
        yaxis=dict(autorange="reversed"),
        xaxis_title=VALUE_AXIS_TITLE,
        bargap=0.15,
    )
    if label_col is not None:
        labels = _display_labels(totals_df, entity_col, label_col)
        fig.update_yaxes(tickmode="array", tickvals=entities, ticktext=[labels[e] for e in entities])
    return fig


def treemap(
    totals_df: pl.DataFrame, entity_col: str, title: str, label_col: Optional[str] = None
) -> go.Figure:
    """Treemap of entity totals, one leaf per entity under an "All" root."""
    entities = totals_df[entity_col].to_list()
    values = totals_df["total_value"].to_list()
    labels = _display_labels(totals_df, entity_col, label_col)

    fig = go.Figure(
        go.Treemap(
            ids=["All"] + entities,
            labels=["All"] + [labels[e] for e in entities],
            parents=[""] + ["All"] * len(entities),
            values=[0] + values,
            branchvalues="remainder",
            hovertext=["All"] + entities,
            hoverinfo="text+value",
            root_color="lightgrey",
        )
    )
    fig.update_layout(title_text=title)
    return fig


def trade_balance_chart(balance_df: pl.DataFrame, title: str) -> go.Figure:
    """Exports and imports as lines, balance as bars."""
    years = balance_df["year"].to_list()

    fig = go.Figure()
    fig.add_trace(go.Bar(x=years, y=balance_df["balance"].to_list(), name="Balance", marker_color="rgb(255, 152, 0)"))
    fig.add_trace(go.Scatter(x=years, y=balance_df["exports"].to_list(), mode="lines+markers", name="Exports"))
    fig.add_trace(go.Scatter(x=years, y=balance_df["imports"].to_list(), mode="lines+markers", name="Imports"))
    fig.update_layout(title_text=title, yaxis_title=VALUE_AXIS_TITLE, xaxis_title="Year")
    fig.update_xaxes(type="linear", dtick=1)
    return fig


def correlation_heatmap(result: ClusterResult, title: str) -> go.Figure:
    """Heatmap of the pairwise correlation matrix, fixed to [-1, 1]."""
    corr = result.correlation
    fig = go.Figure(
        go.Heatmap(
            z=corr.to_numpy(),
            x=list(corr.columns),
            y=list(corr.index),
            zmin=-1,
            zmax=1,
            colorscale="RdBu",
        )
    )
    fig.update_layout(title_text=title, yaxis=dict(autorange="reversed"))
    return fig


def cluster_series_chart(series_df: pl.DataFrame, result: ClusterResult, title: str) -> go.Figure:
    """Yearly series of each entity, one facet per cluster."""
    entity_col = result.entity_col
    plot_df = series_df.join(
        result.assignments.select(entity_col, "cluster"), on=entity_col, how="inner"
    ).with_columns(pl.format("Cluster {}", pl.col("cluster")).alias("cluster_label"))

    fig = px.line(
        plot_df.sort(["cluster", entity_col, "year"]).to_pandas(),
        x="year",
        y="value",
        color=entity_col,
        facet_col="cluster_label",
        markers=True,
        title=title,
    )
    fig.update_layout(yaxis_title=VALUE_AXIS_TITLE, legend_title_text="")
    return fig
