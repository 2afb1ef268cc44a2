"""
Plots of ICD diagnosis frequency by a reference variable.
"""

from typing import List

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
from matplotlib.figure import Figure
from matplotlib.ticker import PercentFormatter

# legend_pos -> (loc, bbox_to_anchor) placing the legend outside the axes
LEGEND_POSITIONS = {
    "right": ("center left", (1.02, 0.5)),
    "left": ("center right", (-0.12, 0.5)),
    "top": ("lower center", (0.5, 1.02)),
    "bottom": ("upper center", (0.5, -0.15)),
}


def _style_axes(ax, plot_title: str, reference_lab: str, freq_lab: str) -> None:
    ax.set_title(plot_title, fontweight="bold")
    ax.set_xlabel(reference_lab, fontweight="bold")
    ax.set_ylabel(freq_lab, fontweight="bold")
    ax.set_facecolor((0.745, 0.745, 0.745, 0.10))
    ax.grid(False)
    ax.tick_params(axis="x", length=0)
    ax.yaxis.set_major_formatter(PercentFormatter(xmax=1, decimals=0))


def _place_legend(ax, legend_col: int, legend_pos: str) -> None:
    if legend_pos == "none":
        return
    if legend_pos not in LEGEND_POSITIONS:
        raise ValueError(
            f"Unknown legend position '{legend_pos}', expected one of {sorted(LEGEND_POSITIONS) + ['none']}"
        )
    loc, anchor = LEGEND_POSITIONS[legend_pos]
    ax.legend(ncol=legend_col, loc=loc, bbox_to_anchor=anchor, frameon=False)


def plot_freq_by(
    freq: pl.DataFrame,
    labels: List[str],
    numeric: bool,
    plot_title: str = "",
    legend_col: int = 1,
    legend_pos: str = "right",
    reference_lab: str = "Reference variable",
    freq_lab: str = "UKB disease frequency",
) -> Figure:
    """
    Plot a frequency table produced by `icd_freq_by`.

    Numeric reference variables are drawn as points joined by lines at the
    midpoint of each group; categorical ones as dodged bars, one bar per
    label within each level.

    Returns:
        The matplotlib Figure
    """
    fig, ax = plt.subplots(figsize=(10, 6))

    if numeric:
        mid = ((freq["lower"] + freq["upper"]) / 2).to_list()
        for label in labels:
            ax.plot(mid, freq[label].to_list(), marker="o", markersize=5, linewidth=1, label=label)
    else:
        levels = [str(level) for level in freq["group"].to_list()]
        x = np.arange(len(levels))
        width = 0.8 / max(len(labels), 1)
        for i, label in enumerate(labels):
            offset = (i - (len(labels) - 1) / 2) * width
            ax.bar(x + offset, freq[label].to_list(), width, label=label)
        ax.set_xticks(x)
        ax.set_xticklabels(levels)

    _style_axes(ax, plot_title, reference_lab, freq_lab)
    _place_legend(ax, legend_col, legend_pos)
    fig.tight_layout()

    return fig
