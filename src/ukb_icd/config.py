"""
Defaults and configuration loading for ukb_icd.

The reference tables bundled with the package are samples of common
categories and subcodes, not the complete ICD-9 / ICD-10 code lists. Codes
missing from them resolve to nothing, and a WARNING is logged when a sample
table is read. Full tables are swapped in with the UKB_ICD9_CODES /
UKB_ICD10_CODES environment variables, each pointing at a CSV or
Parquet file with `code` and `meaning` columns.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

SUPPORTED_ICD_VERSIONS: Tuple[int, ...] = (9, 10)

DEFAULT_ID_COLUMN: str = "eid"

# Diagnosis columns embed their revision after this prefix, e.g.
# "diagnoses_icd10_f41270_0_0" or "diagnoses_secondary_icd9_f41205_0_3"
DIAGNOSIS_COLUMN_PATTERN: str = "^diagnoses.*icd{version}"

# WHO top causes of death globally in 2015
DEFAULT_ICD_CODES: Tuple[str, ...] = (
    "^(I2[0-5])",
    "^(I6[0-9])",
    "^(J09|J1[0-9]|J2[0-2]|P23|U04)",
)
DEFAULT_ICD_LABELS: Tuple[str, ...] = (
    "coronary artery disease",
    "cerebrovascular disease",
    "lower respiratory tract infection",
)

DEFAULT_N_GROUPS: int = 10

DATA_DIR: Path = Path(__file__).parent / "data"

CODE_TABLE_FILES: Dict[int, str] = {
    9: "icd9codes.csv",
    10: "icd10codes.csv",
}

CODE_TABLE_ENV_VARS: Dict[int, str] = {
    9: "UKB_ICD9_CODES",
    10: "UKB_ICD10_CODES",
}


def validate_icd_version(icd_version: Any) -> int:
    """Return `icd_version` if it is a supported ICD revision, raise ValueError otherwise."""
    if isinstance(icd_version, bool) or icd_version not in SUPPORTED_ICD_VERSIONS:
        raise ValueError(
            f"`icd_version` {icd_version!r} is an invalid ICD revision number. "
            "Enter 9 for ICD9, or 10 for ICD10"
        )
    return int(icd_version)


def code_table_path(icd_version: int) -> Path:
    """Location of the reference table for `icd_version`, honouring environment overrides."""
    icd_version = validate_icd_version(icd_version)
    override = os.environ.get(CODE_TABLE_ENV_VARS[icd_version])
    if override:
        return Path(override)
    return DATA_DIR / CODE_TABLE_FILES[icd_version]


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load a JSON configuration file

    Args:
        config_path: Path to configuration JSON file

    Returns:
        Configuration dictionary
    """
    if not config_path or not os.path.exists(config_path):
        raise ValueError(f"Configuration file required but not found: {config_path}")

    with open(config_path, "r") as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a JSON object")

    return config
