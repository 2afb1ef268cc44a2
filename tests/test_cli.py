"""
Tests for the ukb_icd command line interface.
"""

import json

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend

import matplotlib.pyplot as plt
import polars as pl
import pytest

from ukb_icd.cli import main, read_dataset
from ukb_icd.config import DEFAULT_ICD_LABELS


@pytest.fixture
def dataset_csv(tmp_path, ukb_data):
    path = tmp_path / "ukb.csv"
    ukb_data.write_csv(path)
    return str(path)


@pytest.fixture
def dataset_parquet(tmp_path, ukb_data):
    path = tmp_path / "ukb.parquet"
    ukb_data.write_parquet(path)
    return str(path)


class TestReadDataset:
    """Test loading datasets from disk."""

    def test_csv_keeps_codes_as_strings(self, tmp_path):
        path = tmp_path / "icd9.csv"
        path.write_text("eid,bmi,diagnoses_icd9_f41271_0_0\n1,21.5,0010\n2,30.2,4019\n")

        data = read_dataset(str(path))

        assert data.schema["diagnoses_icd9_f41271_0_0"] == pl.Utf8
        assert data["diagnoses_icd9_f41271_0_0"].to_list() == ["0010", "4019"]
        assert data.schema["bmi"] == pl.Float64

    def test_csv_with_schema(self, tmp_path):
        path = tmp_path / "custom.csv"
        path.write_text("person,dx\n1,0010\n")

        data = read_dataset(str(path), {"id_column": "person", "diagnosis_columns": {"9": ["dx"]}})

        assert data["dx"].to_list() == ["0010"]

    def test_parquet(self, dataset_parquet, ukb_data):
        assert read_dataset(dataset_parquet).equals(ukb_data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_dataset(str(tmp_path / "missing.csv"))

    def test_unknown_type(self, tmp_path):
        path = tmp_path / "ukb.txt"
        path.write_text("eid\n1\n")

        with pytest.raises(RuntimeError, match="unknown type"):
            read_dataset(str(path))


class TestCommands:
    """Test each subcommand end to end."""

    def test_meaning(self, capsys):
        assert main(["meaning", "I74"]) == 0
        assert "Arterial embolism and thrombosis" in capsys.readouterr().out

    def test_keyword(self, capsys):
        assert main(["keyword", "angina", "--icd_version", "9"]) == 0
        assert "4139" in capsys.readouterr().out

    def test_keyword_to_csv(self, tmp_path):
        output = tmp_path / "keyword.csv"

        assert main(["keyword", "embolism", "--output", str(output)]) == 0

        result = pl.read_csv(output)
        assert set(result["code"].to_list()) == {"I26", "I74"}

    def test_diagnosis(self, dataset_csv, tmp_path):
        output = tmp_path / "diagnosis.csv"

        assert main(["diagnosis", dataset_csv, "1", "4", "--output", str(output)]) == 0

        result = pl.read_csv(output, infer_schema=False)
        assert result.rows() == [("1", "I21", "Acute myocardial infarction")]

    def test_prevalence(self, dataset_parquet, capsys):
        assert main(["prevalence", dataset_parquet, "^I"]) == 0
        assert float(capsys.readouterr().out.strip()) == pytest.approx(0.5)

    def test_prevalence_with_schema(self, tmp_path, capsys):
        data_path = tmp_path / "custom.csv"
        data_path.write_text("person,dx\n1,0010\n2,4019\n3,\n4,\n")
        schema_path = tmp_path / "schema.json"
        schema_path.write_text(json.dumps({"id_column": "person", "diagnosis_columns": {"9": ["dx"]}}))

        argv = ["prevalence", str(data_path), "^0010$", "--icd_version", "9", "--schema", str(schema_path)]
        assert main(argv) == 0
        assert float(capsys.readouterr().out.strip()) == pytest.approx(0.25)

    def test_freq_by(self, dataset_csv, tmp_path):
        output = tmp_path / "freq.csv"
        plot = tmp_path / "freq.png"

        argv = [
            "freq-by",
            dataset_csv,
            "age",
            "--n_groups",
            "2",
            "--codes",
            "^I",
            "^J",
            "--labels",
            "circulatory",
            "respiratory",
            "--num_proc",
            "1",
            "--output",
            str(output),
            "--plot",
            str(plot),
        ]
        assert main(argv) == 0

        result = pl.read_csv(output)
        assert result.columns == ["group", "circulatory", "respiratory", "lower", "upper"]
        assert result["circulatory"].to_list() == [0.5, 0.5]
        assert plot.exists()

    @pytest.mark.parametrize(
        "reference_var,codes,expected",
        [
            ("sex", ["--codes", "^I", "^J"], (["V1", "V2"], False)),
            ("age", [], (list(DEFAULT_ICD_LABELS), True)),
        ],
    )
    def test_freq_by_plot_gets_resolved_labels(
        self, dataset_csv, tmp_path, monkeypatch, reference_var, codes, expected
    ):
        """The plot is drawn with the labels the table was built with."""
        calls = []

        def record_plot(freq, labels, numeric, **kwargs):
            calls.append((labels, numeric))
            return plt.figure()

        monkeypatch.setattr("ukb_icd.cli.plot_freq_by", record_plot)
        plot = tmp_path / "freq.png"

        argv = ["freq-by", dataset_csv, reference_var, "--n_groups", "2", "--num_proc", "1", "--plot", str(plot)]
        assert main(argv + codes) == 0

        assert calls == [expected]
        assert plot.exists()


class TestErrors:
    """Test error reporting."""

    def test_unknown_id(self, dataset_csv, capsys):
        assert main(["diagnosis", dataset_csv, "999"]) == 1
        assert "Invalid sample id" in capsys.readouterr().err

    def test_missing_dataset(self, tmp_path, capsys):
        assert main(["prevalence", str(tmp_path / "missing.csv"), "^I"]) == 1
        assert "Dataset not found" in capsys.readouterr().err

    def test_invalid_version(self):
        with pytest.raises(SystemExit):
            main(["meaning", "I74", "--icd_version", "11"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
