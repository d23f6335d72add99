"""Plotly charts for the calculator and the fill forecast, rendered in Streamlit."""
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from config import warehouse as config
from core.forecast import ForecastResult

VOLUME_COLOR = "#2563eb"
CELLS_COLOR = "#10b981"
WARN_COLOR = "#999999"
LIMIT_COLOR = "#dd0000"


def fill_color(pct) -> str:
    """Green below 80%, amber below 100%, red above."""
    if pct is None:
        return "#adb5bd"
    if pct >= 100:
        return "#f43f5e"
    if pct >= 80:
        return "#f59e0b"
    return "#10b981"


def build_forecast_figure(result: ForecastResult) -> go.Figure:
    """Fill % by volume and by cells per month, with 80% / 100% guide lines."""
    fig = go.Figure()
    if not result.rows:
        fig.update_layout(title_text="No forecast data", height=360)
        return fig

    x = [r.ym for r in result.rows]
    hover = [f"{r.ym} {r.labels}".strip() for r in result.rows]

    fig.add_scatter(
        x=x, y=[r.pct_m3 for r in result.rows], mode="lines",
        name="% by m3", line=dict(color=VOLUME_COLOR, width=2),
        hovertext=hover, hovertemplate="%{hovertext}<br>%{y:.1f}%<extra>m3</extra>",
    )
    fig.add_scatter(
        x=x, y=[r.pct_cells for r in result.rows], mode="lines",
        name="% by cells", line=dict(color=CELLS_COLOR, width=2),
        hovertext=hover, hovertemplate="%{hovertext}<br>%{y:.1f}%<extra>cells</extra>",
    )

    low, high = config.FILL_THRESHOLDS
    fig.add_hline(y=low, line=dict(color=WARN_COLOR, dash="dash"), annotation_text=f"{low}%")
    fig.add_hline(y=high, line=dict(color=LIMIT_COLOR, dash="dash"), annotation_text=f"{high}%")

    peak = max(max(r.pct_m3 for r in result.rows), max(r.pct_cells for r in result.rows))
    fig.update_layout(
        xaxis=dict(title="Month", tickangle=-30),
        yaxis=dict(title="Fill", ticksuffix="%", range=[0, max(140, peak * 1.05)], gridcolor="#e9ecef"),
        legend=dict(orientation="h", y=-0.25),
        margin=dict(l=60, r=30, t=30, b=90),
        height=360,
        plot_bgcolor="#f8f9fb",
        paper_bgcolor="#ffffff",
    )
    return fig


def build_category_fill_figure(categories: pd.DataFrame, top_n: int = 20) -> go.Figure:
    """Horizontal bars of category fill %, colored by fill band."""
    df = categories[categories["fill_pct"].notna()].head(top_n)
    fills = [float(v) for v in df["fill_pct"]]

    fig = go.Figure()
    fig.add_bar(
        y=df["category"].tolist(),
        x=fills,
        orientation="h",
        marker=dict(color=[fill_color(v) for v in fills]),
        hovertext=[
            f"{c}: {v:.1f} / {cap:.1f} m3"
            for c, v, cap in zip(df["category"], df["volume_cbm"], df["capacity_cbm"])
        ],
        hoverinfo="text",
        showlegend=False,
    )
    fig.update_layout(
        xaxis=dict(title="Fill", ticksuffix="%"),
        yaxis=dict(autorange="reversed"),
        margin=dict(l=160, r=30, t=20, b=50),
        height=max(240, 28 * len(df) + 80),
        plot_bgcolor="#f8f9fb",
        paper_bgcolor="#ffffff",
    )
    return fig


def render_forecast_chart(result: ForecastResult):
    """Render forecast chart into active Streamlit app."""
    if not result.rows:
        st.info("No forecast rows to chart.")
        return
    st.plotly_chart(build_forecast_figure(result), use_container_width=True)


def render_category_chart(categories: pd.DataFrame):
    """Render category fill bars into active Streamlit app."""
    if categories is None or categories.empty:
        st.info("No categories to chart.")
        return
    st.plotly_chart(build_category_fill_figure(categories), use_container_width=True)
