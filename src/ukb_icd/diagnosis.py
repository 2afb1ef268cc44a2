"""
Per-individual diagnosis lookup.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

import polars as pl

from ukb_icd.codes import icd_code_meaning
from ukb_icd.config import validate_icd_version
from ukb_icd.schema import get_diagnosis_columns, get_id_column

logger = logging.getLogger(__name__)

DIAGNOSIS_SCHEMA = {"sample": pl.Utf8, "code": pl.Utf8, "meaning": pl.Utf8}


def _as_id_list(id: Union[str, int, Iterable[Any]]) -> List[str]:
    if isinstance(id, (str, int)):
        return [str(id)]
    return [str(i) for i in id]


def individual_codes(data: pl.DataFrame, id_column: str, sample: str, columns: List[str]) -> List[str]:
    """Non-missing diagnosis codes held by one individual, in column order."""
    row = data.filter(pl.col(id_column).cast(pl.Utf8) == sample).select(
        [pl.col(c).cast(pl.Utf8) for c in columns]
    )
    codes = []
    for values in row.iter_rows():
        codes.extend(v for v in values if v is not None and v != "")
    return codes


def icd_diagnosis(
    data: pl.DataFrame,
    id: Union[str, int, Iterable[Any]],
    icd_version: int = 10,
    dataset_schema: Optional[Dict[str, Any]] = None,
) -> pl.DataFrame:
    """
    Retrieve the diagnoses of one or more individuals.

    Args:
        data: Dataset of individuals, one row per identifier
        id: An individual's identifier, or a collection of identifiers
        icd_version: ICD revision, 9 or 10
        dataset_schema: Optional explicit dataset schema (see `ukb_icd.schema`)

    Returns:
        DataFrame with columns `sample`, `code` and `meaning`, one row per
        resolved diagnosis code
    """
    icd_version = validate_icd_version(icd_version)
    id_column = get_id_column(data, dataset_schema)
    samples = _as_id_list(id)

    known = set(data[id_column].cast(pl.Utf8).to_list())
    unknown = [s for s in samples if s not in known]
    if unknown:
        raise ValueError(
            f"Invalid sample id(s) {unknown}. Check all ids are included in the supplied data"
        )

    columns = get_diagnosis_columns(data, icd_version, dataset_schema)

    results = []
    with_codes = []
    for sample in samples:
        codes = individual_codes(data, id_column, sample, columns)
        if not codes:
            logger.info(f"ID {sample} has no ICD {icd_version} diagnoses")
            continue

        with_codes.append(sample)
        meanings = icd_code_meaning(codes, icd_version)
        results.append(meanings.select(pl.lit(sample).alias("sample"), pl.col("code"), pl.col("meaning")))

    if results:
        diagnoses = pl.concat(results, how="vertical")
    else:
        diagnoses = pl.DataFrame(schema=DIAGNOSIS_SCHEMA)

    resolved = set(diagnoses["sample"].to_list())
    unresolved = [s for s in with_codes if s not in resolved]
    if unresolved:
        logger.info(
            f"ID(s) {' '.join(unresolved)} have no ICD {icd_version} diagnoses in the reference table"
        )

    return diagnoses
