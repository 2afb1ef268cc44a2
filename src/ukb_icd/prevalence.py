"""
Prevalence of ICD diagnoses, overall and stratified by a reference variable.

`icd_freq_by` splits individuals into groups (levels of a categorical
reference variable, or quantile bins of a numeric one) and computes the
prevalence of each diagnosis pattern inside every group. Groups are
independent, so the per-group work is farmed out to a process pool.
"""

import logging
import multiprocessing
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl
from tqdm import tqdm

from ukb_icd.codes import as_str_list
from ukb_icd.config import DEFAULT_ICD_CODES, DEFAULT_ICD_LABELS, DEFAULT_N_GROUPS, validate_icd_version
from ukb_icd.plotting import plot_freq_by
from ukb_icd.schema import get_diagnosis_columns

logger = logging.getLogger(__name__)

GROUP_COLUMN = "group"
BOUND_COLUMNS = ("lower", "upper")


# ============================================================================
# PREVALENCE
# ============================================================================


def prevalence_over(data: pl.DataFrame, columns: List[str], icd_code: str) -> float:
    """Fraction of rows of `data` where any of `columns` matches the regular expression `icd_code`."""
    if data.height == 0 or not columns:
        return 0.0

    is_case = pl.any_horizontal(
        [pl.col(c).cast(pl.Utf8).str.contains(icd_code).fill_null(False) for c in columns]
    )

    try:
        cases = data.select(is_case.sum()).item()
    except pl.exceptions.PolarsError as e:
        raise ValueError(f"Invalid ICD code pattern {icd_code!r}: {e}") from e

    return cases / data.height


def icd_prevalence(
    data: pl.DataFrame,
    icd_code: str,
    icd_version: int = 10,
    dataset_schema: Optional[Dict[str, Any]] = None,
) -> float:
    """
    Prevalence of an ICD diagnosis.

    Args:
        data: Dataset of individuals
        icd_code: An ICD code such as "I74". Regular expressions select broader
            sets of diagnoses, e.g. "I" for diseases of the circulatory system
            (I00-I99) or "C|D[0-4]." for neoplasms (C00-D49).
        icd_version: ICD revision, 9 or 10
        dataset_schema: Optional explicit dataset schema (see `ukb_icd.schema`)

    Returns:
        Fraction of individuals with at least one matching diagnosis
    """
    icd_version = validate_icd_version(icd_version)
    if not isinstance(icd_code, str):
        raise ValueError(f"`icd_code` must be a string pattern, got {type(icd_code).__name__}")

    columns = get_diagnosis_columns(data, icd_version, dataset_schema)
    if not columns:
        logger.info(f"No ICD {icd_version} diagnosis columns found in the supplied data")

    return prevalence_over(data, columns, icd_code)


# ============================================================================
# QUANTILE BINNING
# ============================================================================


def quantile_breaks(values: pl.Series, n_groups: int) -> List[float]:
    """
    Breaks splitting `values` into `n_groups` groups of roughly equal size.

    Tied quantiles are merged, so fewer than `n_groups + 1` breaks are
    returned when the data cannot support that many distinct bins.
    """
    if n_groups < 1:
        raise ValueError(f"`n_groups` must be at least 1, got {n_groups}")

    values = values.drop_nulls().cast(pl.Float64)
    values = values.filter(values.is_not_nan())
    if values.len() == 0:
        return []

    probs = [i / n_groups for i in range(n_groups + 1)]
    return sorted({float(values.quantile(p, interpolation="linear")) for p in probs})


def _interval_labels(bounds: Sequence[Tuple[float, float]], digits: int) -> List[str]:
    return [
        f"{'[' if i == 0 else '('}{lower:.{digits}g},{upper:.{digits}g}]" for i, (lower, upper) in enumerate(bounds)
    ]


def quantile_intervals(breaks: Sequence[float]) -> pl.DataFrame:
    """
    Labelled intervals for `breaks`: the first one closed, the rest left-open.

    Labels start at six significant digits and gain digits until every
    label is distinct, so close breaks on large values never share a label.
    """
    if len(breaks) == 1:
        bounds = [(breaks[0], breaks[0])]
    else:
        bounds = list(zip(breaks[:-1], breaks[1:]))

    # 17 significant digits tell any two distinct floats apart
    for digits in range(6, 18):
        labels = _interval_labels(bounds, digits)
        if len(set(labels)) == len(labels):
            break

    return pl.DataFrame(
        {
            GROUP_COLUMN: labels,
            "lower": [b[0] for b in bounds],
            "upper": [b[1] for b in bounds],
        },
        schema={GROUP_COLUMN: pl.Utf8, "lower": pl.Float64, "upper": pl.Float64},
    )


def _interval_expr(reference_var: str, breaks: Sequence[float], values: Sequence[Any], dtype: pl.DataType) -> pl.Expr:
    # Breaks ascend, so the outermost matching condition is the largest break below the value
    expr = pl.lit(values[0], dtype=dtype)
    for b, value in zip(breaks[1:-1], values[1:]):
        expr = pl.when(pl.col(reference_var) > b).then(pl.lit(value, dtype=dtype)).otherwise(expr)
    return expr


def quantile_bin_index(reference_var: str, breaks: Sequence[float]) -> pl.Expr:
    """Position of each row's interval in `quantile_intervals(breaks)`."""
    n_intervals = max(len(breaks) - 1, 1)
    return _interval_expr(reference_var, breaks, list(range(n_intervals)), pl.UInt32)


def assign_quantile_groups(data: pl.DataFrame, reference_var: str, breaks: Sequence[float]) -> pl.DataFrame:
    """Add the interval label of each row's reference value as the `group` column."""
    labels = quantile_intervals(breaks)[GROUP_COLUMN].to_list()
    return data.with_columns(_interval_expr(reference_var, breaks, labels, pl.Utf8).alias(GROUP_COLUMN))


# ============================================================================
# STRATIFIED FREQUENCY
# ============================================================================


def is_categorical(dtype: pl.DataType) -> bool:
    return dtype in (pl.Utf8, pl.Boolean) or isinstance(dtype, (pl.Categorical, pl.Enum))


def resolve_icd_labels(icd_codes: List[str], icd_labels: Optional[Union[str, Iterable[str]]]) -> List[str]:
    """Column labels for `icd_codes`, warning when custom codes come without their own labels."""
    custom_codes = tuple(icd_codes) != DEFAULT_ICD_CODES

    if icd_labels is None:
        if not custom_codes:
            return list(DEFAULT_ICD_LABELS)
        labels = [f"V{i}" for i in range(1, len(icd_codes) + 1)]
    else:
        labels = as_str_list(icd_labels, "icd_labels")

    if custom_codes and (icd_labels is None or tuple(labels) == DEFAULT_ICD_LABELS):
        logger.warning("If you specify `icd_code`, you must supply corresponding label(s) to `icd_labels`.")

    if len(labels) != len(icd_codes):
        raise ValueError(f"Got {len(icd_codes)} ICD code pattern(s) but {len(labels)} label(s) in `icd_labels`")
    if len(set(labels)) != len(labels):
        raise ValueError(f"`icd_labels` must be unique, got {labels}")
    reserved = [label for label in labels if label in (GROUP_COLUMN,) + BOUND_COLUMNS]
    if reserved:
        raise ValueError(f"`icd_labels` cannot use the reserved column name(s) {reserved}")

    return labels


def group_frequency_worker(args: Tuple) -> Tuple[Any, Dict[str, float]]:
    """
    Worker computing the prevalence of every pattern within one group.

    Returns:
        (group key, {label: frequency})
    """
    group_key, group_data, columns, icd_codes, icd_labels = args

    frequencies = {}
    for label, icd_code in zip(icd_labels, icd_codes):
        frequencies[label] = prevalence_over(group_data, columns, icd_code)

    return group_key, frequencies


def run_group_workers(tasks: List[Tuple], num_proc: Optional[int] = None, verbose: bool = False) -> Dict[Any, Dict]:
    """
    Run `group_frequency_worker` over `tasks`, in a process pool when it pays off.

    Results come back in completion order and are merged by group key.
    """
    if num_proc is None:
        num_proc = os.cpu_count() or 1
    if num_proc < 1:
        raise ValueError(f"`num_proc` must be at least 1, got {num_proc}")

    num_proc = min(num_proc, len(tasks))
    logger.debug(f"Computing frequencies for {len(tasks)} group(s) with {num_proc} worker(s)")

    results = {}
    if num_proc <= 1:
        for task in tqdm(tasks, desc="Computing group frequencies", disable=not verbose):
            group_key, frequencies = group_frequency_worker(task)
            results[group_key] = frequencies
        return results

    # The pool is terminated when the block exits, including on error
    with multiprocessing.get_context("spawn").Pool(num_proc) as pool:
        with tqdm(total=len(tasks), desc="Computing group frequencies", disable=not verbose) as pbar:
            for group_key, frequencies in pool.imap_unordered(group_frequency_worker, tasks):
                results[group_key] = frequencies
                pbar.update(1)

    return results


def icd_freq_by(
    data: pl.DataFrame,
    reference_var: str,
    n_groups: int = DEFAULT_N_GROUPS,
    icd_code: Union[str, Iterable[str]] = DEFAULT_ICD_CODES,
    icd_labels: Optional[Union[str, Iterable[str]]] = None,
    icd_version: int = 10,
    freq_plot: bool = False,
    plot_title: str = "",
    legend_col: int = 1,
    legend_pos: str = "right",
    reference_lab: str = "Reference variable",
    freq_lab: str = "UKB disease frequency",
    num_proc: Optional[int] = None,
    dataset_schema: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
):
    """
    Frequency of ICD diagnoses by a reference variable.

    Categorical reference variables (strings, booleans, Categorical, Enum)
    are grouped by level. Numeric ones are cut into `n_groups` intervals of
    approximately equal size, and the table gains `lower` and `upper`
    bounds for each interval.

    Args:
        data: Dataset of individuals
        reference_var: Column to stratify individuals by
        n_groups: Number of quantile groups for a numeric reference variable
        icd_code: ICD code pattern(s). Defaults to the WHO top 3 causes of
            death globally in 2015.
        icd_labels: Labels for the patterns, used as column names and in the
            plot legend. Default labels for the default patterns, V1..VN otherwise.
        icd_version: ICD revision, 9 or 10
        freq_plot: Return a matplotlib Figure instead of the table
        plot_title: Title for the plot
        legend_col: Number of columns in the legend
        legend_pos: Legend position ("right", "left", "top", "bottom" or "none")
        reference_lab: x-axis title for the reference variable
        freq_lab: y-axis title for disease frequency
        num_proc: Worker processes for the per-group computation (default: CPU count)
        dataset_schema: Optional explicit dataset schema (see `ukb_icd.schema`)
        verbose: Show a progress bar over groups

    Returns:
        DataFrame with a `group` column and one frequency column per label
        (plus `lower` and `upper` for numeric reference variables), or a
        matplotlib Figure when `freq_plot` is True
    """
    icd_version = validate_icd_version(icd_version)
    icd_codes = as_str_list(icd_code, "icd_code")
    if not icd_codes:
        raise ValueError("`icd_code` must contain at least one pattern")
    labels = resolve_icd_labels(icd_codes, icd_labels)

    if reference_var not in data.columns:
        raise ValueError(f"Reference variable '{reference_var}' not found in the supplied data")
    if n_groups < 1:
        raise ValueError(f"`n_groups` must be at least 1, got {n_groups}")

    dtype = data.schema[reference_var]
    numeric = dtype.is_numeric()
    if not numeric and not is_categorical(dtype):
        raise ValueError(f"Reference variable '{reference_var}' has unsupported type {dtype}")

    columns = [c for c in get_diagnosis_columns(data, icd_version, dataset_schema) if c != reference_var]

    not_missing = pl.col(reference_var).is_not_null()
    if dtype.is_float():
        not_missing = not_missing & pl.col(reference_var).is_not_nan()
    subset = data.select([reference_var] + columns).filter(not_missing)

    # Numeric groups are keyed by interval position, labels are only for display
    if numeric:
        breaks = quantile_breaks(subset[reference_var], n_groups)
        intervals = quantile_intervals(breaks)
        if breaks:
            subset = subset.with_columns(quantile_bin_index(reference_var, breaks).alias(GROUP_COLUMN))
        levels = list(range(intervals.height))
    else:
        subset = subset.with_columns(pl.col(reference_var).alias(GROUP_COLUMN))
        levels = subset[GROUP_COLUMN].unique().sort().to_list()

    if subset.height == 0:
        logger.info(f"No individuals with a non-missing '{reference_var}' value")
        tasks = []
    else:
        tasks = [
            (group[GROUP_COLUMN][0], group.select(columns), columns, icd_codes, labels)
            for group in subset.partition_by(GROUP_COLUMN, maintain_order=True)
        ]

    frequencies = run_group_workers(tasks, num_proc, verbose) if tasks else {}
    present = [level for level in levels if level in frequencies]

    if numeric:
        rows = intervals.filter(pl.int_range(pl.len()).is_in(pl.Series(present, dtype=pl.Int64)))
        group = rows[GROUP_COLUMN]
    else:
        group = pl.Series(GROUP_COLUMN, present, dtype=dtype)

    table = pl.DataFrame(
        [group]
        + [pl.Series(label, [frequencies[level][label] for level in present], dtype=pl.Float64) for label in labels]
    )

    if numeric:
        table = table.hstack(rows.select(list(BOUND_COLUMNS)))

    if freq_plot:
        return plot_freq_by(
            table,
            labels,
            numeric=numeric,
            plot_title=plot_title,
            legend_col=legend_col,
            legend_pos=legend_pos,
            reference_lab=reference_lab,
            freq_lab=freq_lab,
        )

    return table
