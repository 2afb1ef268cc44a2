"""
Command line interface for ICD lookups and diagnosis frequencies.

Usage:
    ukb_icd meaning I74 I21 --icd_version 10
    ukb_icd keyword cardio "lymph.*" --case_sensitive
    ukb_icd diagnosis ukb.parquet 1000015 1000027
    ukb_icd prevalence ukb.parquet "C|D[0-4]."
    ukb_icd freq-by ukb.parquet bmi --n_groups 10 --plot bmi.png
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import matplotlib.pyplot as plt
import polars as pl

from ukb_icd.codes import icd_code_meaning, icd_keyword
from ukb_icd.config import DEFAULT_ICD_CODES, SUPPORTED_ICD_VERSIONS
from ukb_icd.diagnosis import icd_diagnosis
from ukb_icd.plotting import plot_freq_by
from ukb_icd.prevalence import icd_freq_by, icd_prevalence, resolve_icd_labels
from ukb_icd.schema import load_dataset_schema, match_diagnosis_columns

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    root = logging.getLogger("ukb_icd")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


def read_dataset(fname: str, dataset_schema: Optional[Dict[str, Any]] = None) -> pl.DataFrame:
    """Read a dataset from CSV or Parquet, keeping diagnosis codes as strings."""
    if not Path(fname).exists():
        raise FileNotFoundError(f"Dataset not found: {fname}")

    if fname.endswith(".csv") or fname.endswith(".csv.gz"):
        columns = pl.scan_csv(fname).collect_schema().names()
        if dataset_schema is None:
            diagnosis_columns = match_diagnosis_columns(columns, 9) + match_diagnosis_columns(columns, 10)
        else:
            diagnosis_columns = [c for cols in dataset_schema["diagnosis_columns"].values() for c in cols]
        # Don't let codes like "250" or "4019" be inferred as integers
        overrides = {c: pl.Utf8 for c in diagnosis_columns if c in columns}
        return pl.read_csv(fname, schema_overrides=overrides, infer_schema_length=10000)
    elif fname.endswith(".parquet"):
        return pl.read_parquet(fname)
    else:
        raise RuntimeError("Found file of unknown type " + fname + " expected parquet or csv")


def write_table(table: pl.DataFrame, output: Optional[str]) -> None:
    if output:
        table.write_csv(output)
        logger.info(f"Wrote {table.height} row(s) to {output}")
    else:
        with pl.Config(tbl_rows=-1, tbl_cols=-1, fmt_str_lengths=120):
            print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ukb_icd", description="ICD code lookups and diagnosis frequencies")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging and progress bars")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--icd_version", type=int, default=10, choices=SUPPORTED_ICD_VERSIONS, help="ICD revision number"
    )
    common.add_argument("--output", "-o", type=str, help="Save the resulting table to CSV")

    dataset = argparse.ArgumentParser(add_help=False)
    dataset.add_argument("dataset", type=str, help="Path to the dataset (CSV or Parquet)")
    dataset.add_argument("--schema", type=str, help="JSON file naming the id and diagnosis columns")

    subparsers = parser.add_subparsers(dest="command", required=True)

    meaning = subparsers.add_parser("meaning", parents=[common], help="Describe ICD codes")
    meaning.add_argument("codes", nargs="+", help="ICD codes, e.g. I74")

    keyword = subparsers.add_parser("keyword", parents=[common], help="Search ICD descriptions")
    keyword.add_argument("keywords", nargs="+", help="Keywords or regular expressions")
    keyword.add_argument("--case_sensitive", action="store_true", help="Match case when searching")

    diagnosis = subparsers.add_parser("diagnosis", parents=[dataset, common], help="Diagnoses of individuals")
    diagnosis.add_argument("ids", nargs="+", help="Individual identifiers")

    prevalence = subparsers.add_parser("prevalence", parents=[dataset, common], help="Prevalence of a diagnosis")
    prevalence.add_argument("pattern", type=str, help='ICD code regular expression, e.g. "I" or "C|D[0-4]."')

    freq_by = subparsers.add_parser("freq-by", parents=[dataset, common], help="Diagnosis frequency by a variable")
    freq_by.add_argument("reference_var", type=str, help="Column to stratify individuals by")
    freq_by.add_argument("--n_groups", type=int, default=10, help="Quantile groups for a numeric variable")
    freq_by.add_argument("--codes", nargs="+", help="ICD code patterns (default: WHO top causes of death)")
    freq_by.add_argument("--labels", nargs="+", help="Labels for --codes")
    freq_by.add_argument("--num_proc", type=int, default=None, help="Worker processes (default: CPU count)")
    freq_by.add_argument("--plot", type=str, help="Save a plot of the frequencies to this path")
    freq_by.add_argument("--title", type=str, default="", help="Plot title")
    freq_by.add_argument("--reference_lab", type=str, default="Reference variable", help="x-axis title")
    freq_by.add_argument("--freq_lab", type=str, default="UKB disease frequency", help="y-axis title")
    freq_by.add_argument("--legend_col", type=int, default=1, help="Number of legend columns")
    freq_by.add_argument("--legend_pos", type=str, default="right", help="Legend position")

    return parser


def run(args: argparse.Namespace) -> None:
    if args.command == "meaning":
        write_table(icd_code_meaning(args.codes, args.icd_version), args.output)
        return

    if args.command == "keyword":
        write_table(icd_keyword(args.keywords, args.icd_version, ignore_case=not args.case_sensitive), args.output)
        return

    dataset_schema = load_dataset_schema(args.schema) if args.schema else None
    data = read_dataset(args.dataset, dataset_schema)
    logger.debug(f"Loaded {data.height} row(s) and {data.width} column(s) from {args.dataset}")

    if args.command == "diagnosis":
        write_table(icd_diagnosis(data, args.ids, args.icd_version, dataset_schema), args.output)

    elif args.command == "prevalence":
        print(icd_prevalence(data, args.pattern, args.icd_version, dataset_schema))

    elif args.command == "freq-by":
        icd_codes = args.codes or list(DEFAULT_ICD_CODES)
        labels = resolve_icd_labels(icd_codes, args.labels)
        freq = icd_freq_by(
            data,
            args.reference_var,
            n_groups=args.n_groups,
            icd_code=icd_codes,
            icd_labels=labels,
            icd_version=args.icd_version,
            num_proc=args.num_proc,
            dataset_schema=dataset_schema,
            verbose=args.verbose,
        )
        write_table(freq, args.output)

        if args.plot:
            fig = plot_freq_by(
                freq,
                labels,
                numeric=data.schema[args.reference_var].is_numeric(),
                plot_title=args.title,
                legend_col=args.legend_col,
                legend_pos=args.legend_pos,
                reference_lab=args.reference_lab,
                freq_lab=args.freq_lab,
            )
            fig.savefig(args.plot, bbox_inches="tight")
            plt.close(fig)
            logger.info(f"Saved plot to {args.plot}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        run(args)
    except (ValueError, RuntimeError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
