"""
Dataset schema contract.

A dataset schema tells the lookup and prevalence functions which column
holds the individual identifier and which columns hold diagnosis codes for
each ICD revision:

    {
        "id_column": "eid",
        "diagnosis_columns": {
            "9": ["diagnoses_icd9_f41271_0_0", ...],
            "10": ["diagnoses_icd10_f41270_0_0", ...]
        }
    }

When no schema is supplied it is inferred from the column naming convention
of the upstream loader (see `DIAGNOSIS_COLUMN_PATTERN`).
"""

import re
from typing import Any, Dict, List, Optional

import jsonschema
import polars as pl

from ukb_icd.config import DEFAULT_ID_COLUMN, DIAGNOSIS_COLUMN_PATTERN, load_config, validate_icd_version

DATASET_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id_column": {"type": "string", "minLength": 1},
        "diagnosis_columns": {
            "type": "object",
            "properties": {
                "9": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
                "10": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
            },
            "additionalProperties": False,
        },
    },
    "required": ["diagnosis_columns"],
    "additionalProperties": False,
}


def validate_dataset_schema(dataset_schema: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a dataset schema dict, filling in the default id column."""
    try:
        jsonschema.validate(instance=dataset_schema, schema=DATASET_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ValueError(f"Invalid dataset schema: {e.message}") from e

    return {
        "id_column": dataset_schema.get("id_column", DEFAULT_ID_COLUMN),
        "diagnosis_columns": {
            version: list(columns) for version, columns in dataset_schema["diagnosis_columns"].items()
        },
    }


def load_dataset_schema(schema_path: str) -> Dict[str, Any]:
    """Load and validate a dataset schema from a JSON file."""
    return validate_dataset_schema(load_config(schema_path))


def match_diagnosis_columns(columns: List[str], icd_version: int) -> List[str]:
    """Columns whose names follow the diagnosis naming convention for `icd_version`."""
    pattern = re.compile(DIAGNOSIS_COLUMN_PATTERN.format(version=icd_version))
    return [c for c in columns if pattern.search(c)]


def infer_dataset_schema(data: pl.DataFrame, id_column: str = DEFAULT_ID_COLUMN) -> Dict[str, Any]:
    """Build a dataset schema from the diagnosis column naming convention."""
    return {
        "id_column": id_column,
        "diagnosis_columns": {
            "9": match_diagnosis_columns(data.columns, 9),
            "10": match_diagnosis_columns(data.columns, 10),
        },
    }


def resolve_dataset_schema(data: pl.DataFrame, dataset_schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if dataset_schema is None:
        return infer_dataset_schema(data)
    return validate_dataset_schema(dataset_schema)


def get_id_column(data: pl.DataFrame, dataset_schema: Optional[Dict[str, Any]] = None) -> str:
    """Name of the identifier column, checked against `data`."""
    id_column = resolve_dataset_schema(data, dataset_schema)["id_column"]
    if id_column not in data.columns:
        raise ValueError(f"Identifier column '{id_column}' not found in the supplied data")
    return id_column


def get_diagnosis_columns(
    data: pl.DataFrame, icd_version: int, dataset_schema: Optional[Dict[str, Any]] = None
) -> List[str]:
    """
    Diagnosis columns of `data` holding codes of revision `icd_version`.

    Args:
        data: Dataset of individuals
        icd_version: ICD revision, 9 or 10
        dataset_schema: Optional explicit schema; inferred from column names if omitted

    Returns:
        List of column names (possibly empty)
    """
    icd_version = validate_icd_version(icd_version)
    schema = resolve_dataset_schema(data, dataset_schema)
    columns = schema["diagnosis_columns"].get(str(icd_version), [])

    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise ValueError(f"Diagnosis columns {missing} listed in the dataset schema are not in the supplied data")

    return columns
