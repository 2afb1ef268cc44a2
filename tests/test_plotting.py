"""
Unit tests for frequency plots.
"""

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend

import matplotlib.pyplot as plt
import polars as pl
import pytest
from matplotlib.figure import Figure
from matplotlib.ticker import PercentFormatter

from ukb_icd.plotting import plot_freq_by
from ukb_icd.prevalence import icd_freq_by

CODES = ["^I", "^J"]
LABELS = ["circulatory", "respiratory"]


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestPlotFreqBy:
    """Test rendering frequency tables."""

    def test_numeric_line_chart(self, ukb_data):
        fig = icd_freq_by(
            ukb_data, "age", n_groups=2, icd_code=CODES, icd_labels=LABELS, freq_plot=True, num_proc=1
        )

        assert isinstance(fig, Figure)
        ax = fig.axes[0]
        assert [line.get_label() for line in ax.get_lines()] == LABELS
        # One point per group, placed at the group midpoint
        xs, ys = ax.get_lines()[0].get_data()
        assert list(xs) == pytest.approx([38.75, 56.25])
        assert list(ys) == pytest.approx([0.5, 0.5])

    def test_categorical_bar_chart(self, ukb_data):
        fig = icd_freq_by(ukb_data, "sex", icd_code=CODES, icd_labels=LABELS, freq_plot=True, num_proc=1)

        ax = fig.axes[0]
        assert len(ax.patches) == 4
        assert [t.get_text() for t in ax.get_xticklabels()] == ["F", "M"]
        assert sorted(p.get_height() for p in ax.patches) == pytest.approx([0.0, 0.25, 0.5, 0.5])

    def test_labels_and_title(self, ukb_data):
        fig = icd_freq_by(
            ukb_data,
            "sex",
            icd_code=CODES,
            icd_labels=LABELS,
            freq_plot=True,
            plot_title="Disease by sex",
            reference_lab="Sex",
            freq_lab="Frequency",
            num_proc=1,
        )

        ax = fig.axes[0]
        assert ax.get_title() == "Disease by sex"
        assert ax.get_xlabel() == "Sex"
        assert ax.get_ylabel() == "Frequency"

    def test_percent_axis(self):
        freq = pl.DataFrame({"group": ["a", "b"], "circulatory": [0.1, 0.2]})

        fig = plot_freq_by(freq, ["circulatory"], numeric=False)

        assert isinstance(fig.axes[0].yaxis.get_major_formatter(), PercentFormatter)

    def test_legend_columns(self):
        freq = pl.DataFrame({"group": ["a"], "x": [0.1], "y": [0.2], "z": [0.3]})

        fig = plot_freq_by(freq, ["x", "y", "z"], numeric=False, legend_col=3)

        legend = fig.axes[0].get_legend()
        assert [t.get_text() for t in legend.get_texts()] == ["x", "y", "z"]

    def test_no_legend(self):
        freq = pl.DataFrame({"group": ["a"], "x": [0.1]})

        fig = plot_freq_by(freq, ["x"], numeric=False, legend_pos="none")

        assert fig.axes[0].get_legend() is None

    def test_invalid_legend_position(self):
        freq = pl.DataFrame({"group": ["a"], "x": [0.1]})

        with pytest.raises(ValueError, match="Unknown legend position"):
            plot_freq_by(freq, ["x"], numeric=False, legend_pos="middle")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
