"""
ICD-9 and ICD-10 reference tables.

Each table has two string columns, `code` and `meaning`, one row per code.
Tables are read once per process and shared read-only by every lookup. The
bundled tables are samples, see `ukb_icd.config` for supplying full ones.
"""

import functools
import logging
from pathlib import Path
from typing import Iterable, List, Union

import polars as pl

from ukb_icd.config import CODE_TABLE_ENV_VARS, CODE_TABLE_FILES, DATA_DIR, code_table_path, validate_icd_version

logger = logging.getLogger(__name__)

CODE_TABLE_COLUMNS = ("code", "meaning")


def as_str_list(values: Union[str, Iterable[str]], name: str) -> List[str]:
    if isinstance(values, str):
        return [values]
    try:
        items = list(values)
    except TypeError:
        raise ValueError(f"`{name}` must be a string or a collection of strings, got {type(values).__name__}")
    for item in items:
        if not isinstance(item, str):
            raise ValueError(f"`{name}` must only contain strings, got {item!r}")
    return items


def load_code_table(path: Union[str, Path]) -> pl.DataFrame:
    """Read a code reference table from a CSV or Parquet file

    Args:
        path: File with at least `code` and `meaning` columns

    Returns:
        DataFrame with string columns `code` and `meaning`
    """
    fname = str(path)
    if fname.endswith(".csv") or fname.endswith(".csv.gz"):
        # Codes such as "250" or "0010" must stay strings
        table = pl.read_csv(fname, infer_schema=False)
    elif fname.endswith(".parquet"):
        table = pl.read_parquet(fname)
    else:
        raise RuntimeError("Found file of unknown type " + fname + " expected parquet or csv")

    missing = [c for c in CODE_TABLE_COLUMNS if c not in table.columns]
    if missing:
        raise ValueError(f"Code table {fname} is missing required columns {missing}")

    table = table.select([pl.col(c).cast(pl.Utf8) for c in CODE_TABLE_COLUMNS]).filter(pl.col("code").is_not_null())

    if table["code"].n_unique() != table.height:
        raise ValueError(f"Code table {fname} contains duplicate codes")

    return table


@functools.lru_cache(maxsize=None)
def _cached_code_table(path: str, icd_version: int, bundled: bool) -> pl.DataFrame:
    logger.debug(f"Loading ICD {icd_version} reference table from {path}")
    if bundled:
        logger.warning(
            f"Using the sample ICD {icd_version} table bundled with ukb_icd, which lists common codes only. "
            f"Codes outside it resolve to nothing: set {CODE_TABLE_ENV_VARS[icd_version]} to a full code table."
        )
    return load_code_table(path)


def get_code_table(icd_version: int = 10) -> pl.DataFrame:
    """
    Reference table for ICD revision `icd_version` (9 or 10).

    The bundled table is a sample; a WARNING is logged the first time it is read.
    """
    icd_version = validate_icd_version(icd_version)
    path = code_table_path(icd_version)
    bundled = path == DATA_DIR / CODE_TABLE_FILES[icd_version]
    return _cached_code_table(str(path), icd_version, bundled)


def icd_code_meaning(icd_code: Union[str, Iterable[str]], icd_version: int = 10) -> pl.DataFrame:
    """
    Retrieve the description of one or more ICD codes.

    Codes are matched exactly; codes that are not in the reference table
    produce no row.

    Args:
        icd_code: A code such as "I74", or a collection of codes
        icd_version: ICD revision, 9 or 10

    Returns:
        Rows of the reference table (`code`, `meaning`) for the given codes

    Example:
        >>> icd_code_meaning("I74", icd_version=10)
    """
    icd_version = validate_icd_version(icd_version)
    codes = as_str_list(icd_code, "icd_code")
    return get_code_table(icd_version).filter(pl.col("code").is_in(codes))


def icd_keyword(
    description: Union[str, Iterable[str]], icd_version: int = 10, ignore_case: bool = True
) -> pl.DataFrame:
    """
    Retrieve codes whose description matches any of the supplied keywords.

    Args:
        description: One or more keywords, e.g. "cardio" or ["cardio", "lymphoma"].
            Each keyword can be a regular expression, e.g. "lymph*".
        icd_version: ICD revision, 9 or 10
        ignore_case: Case-insensitive matching when True (default)

    Returns:
        Rows of the reference table (`code`, `meaning`) matching any keyword
    """
    icd_version = validate_icd_version(icd_version)
    keywords = as_str_list(description, "description")
    if not keywords:
        raise ValueError("`description` must contain at least one keyword")

    pattern = "|".join(keywords)
    if ignore_case:
        pattern = "(?i)" + pattern

    try:
        return get_code_table(icd_version).filter(pl.col("meaning").str.contains(pattern))
    except pl.exceptions.PolarsError as e:
        raise ValueError(f"Invalid keyword pattern {pattern!r}: {e}") from e
