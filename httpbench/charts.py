from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .records import RunResult
from .stats import StatsDiff

LOGGER = logging.getLogger("httpbench.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 150
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

SESSION_COLORS = {
    "base": "#2E86AB",
    "other": "#F18F01",
}

STATUS_COLORS = {
    "1xx": "#8D99AE",
    "2xx": "#6A994E",
    "3xx": "#2E86AB",
    "4xx": "#F18F01",
    "5xx": "#C73E1D",
    "Other": "#A23B72",
}


def _latency_frame(frame: pd.DataFrame) -> pd.DataFrame:
    df = frame.copy()
    df["latency_ms"] = df["duration_ns"].astype("float64") / 1_000_000
    codes = pd.to_numeric(df["status_code"], errors="coerce")
    df["status_class"] = [
        f"{int(code) // 100}xx" if pd.notna(code) and 100 <= code < 600 else "Other" for code in codes
    ]
    return df


def _save(fig: plt.Figure, chart_path: Path) -> Path:
    chart_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white", edgecolor="none")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def render_latency_chart(result: RunResult, path: str | Path) -> Path:
    """Latency distribution of one run, stacked by HTTP status class."""
    chart_path = Path(path)
    df = result.to_dataframe()
    fig, ax = plt.subplots(figsize=(10, 5))
    if df.empty:
        LOGGER.warning("No latency data available for latency chart")
        ax.text(0.5, 0.5, "No measurements available", ha="center", va="center", transform=ax.transAxes)
        ax.set_axis_off()
        return _save(fig, chart_path)

    df = _latency_frame(df)
    hue_order = [label for label in STATUS_COLORS if label in set(df["status_class"])]
    sns.histplot(
        data=df,
        x="latency_ms",
        hue="status_class",
        hue_order=hue_order,
        palette=STATUS_COLORS,
        multiple="stack",
        bins=min(50, max(len(df) // 2, 5)),
        ax=ax,
    )
    median = df["latency_ms"].median()
    ax.axvline(median, color="#333333", linestyle="--", linewidth=1)
    ax.text(median, ax.get_ylim()[1] * 0.95, f" median {median:.2f} ms", fontsize=9, va="top")

    ax.set_title(
        f"Latency of {len(df)} requests ({result.behavior.clients_count} clients)",
        fontweight="bold",
        pad=15,
    )
    ax.set_xlabel("Latency (ms)", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Requests", fontweight="semibold", labelpad=10)
    return _save(fig, chart_path)


def render_diff_chart(diff: StatsDiff, path: str | Path) -> Path:
    """Overlay the latency distributions of the two compared runs."""
    chart_path = Path(path)
    df = _latency_frame(diff.records)
    df["session_name"] = df["session"].map({0: "base", 1: "other"})

    fig, (hist_ax, box_ax) = plt.subplots(
        1, 2, figsize=(14, 5), gridspec_kw={"width_ratios": [3, 1]}
    )
    sns.histplot(
        data=df,
        x="latency_ms",
        hue="session_name",
        hue_order=["base", "other"],
        palette=SESSION_COLORS,
        element="step",
        stat="density",
        common_norm=False,
        ax=hist_ax,
    )
    hist_ax.set_title("Latency distribution", fontweight="bold", pad=15)
    hist_ax.set_xlabel("Latency (ms)", fontweight="semibold", labelpad=10)
    hist_ax.set_ylabel("Density", fontweight="semibold", labelpad=10)

    sns.boxplot(
        data=df,
        x="session_name",
        y="latency_ms",
        hue="session_name",
        order=["base", "other"],
        palette=SESSION_COLORS,
        showfliers=False,
        ax=box_ax,
    )
    mean_delta = diff.deltas["mean_ns"]
    box_ax.set_title(
        f"Mean {mean_delta.relative:+.1%}",
        fontweight="bold",
        pad=15,
    )
    box_ax.set_xlabel("")
    box_ax.set_ylabel("Latency (ms)", fontweight="semibold", labelpad=10)

    fig.tight_layout()
    return _save(fig, chart_path)


__all__ = ["render_latency_chart", "render_diff_chart"]
