"""
Shared fixtures: small UK Biobank style datasets.
"""

import logging

import polars as pl
import pytest


@pytest.fixture
def ukb_data() -> pl.DataFrame:
    """
    Eight individuals with two ICD-10 and one ICD-9 diagnosis column.

    Individual 3 has two circulatory codes, individual 4 has no diagnoses.
    """
    return pl.DataFrame(
        {
            "eid": [1, 2, 3, 4, 5, 6, 7, 8],
            "sex": ["F", "F", "F", "F", "M", "M", "M", "M"],
            "age": [30, 35, 40, 45, 50, 55, 60, 65],
            "diagnoses_icd10_f41270_0_0": ["I21", None, "J18", None, "I63", "I25", None, None],
            "diagnoses_icd10_f41270_0_1": [None, None, "I21", None, None, "C34", None, None],
            "diagnoses_icd9_f41271_0_0": [None, "4019", None, None, None, None, "4109", None],
        }
    )


@pytest.fixture
def scenario_data() -> pl.DataFrame:
    """Four individuals, only "A" has an ICD-10 diagnosis."""
    return pl.DataFrame(
        {
            "eid": ["A", "B", "C", "D"],
            "diagnoses_icd10_f41270_0_0": ["I74", None, None, None],
            "diagnoses_icd10_f41270_0_1": [None, None, None, None],
        },
        schema={
            "eid": pl.Utf8,
            "diagnoses_icd10_f41270_0_0": pl.Utf8,
            "diagnoses_icd10_f41270_0_1": pl.Utf8,
        },
    )


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo any handler the command line interface installs on the package logger."""
    yield
    package_logger = logging.getLogger("ukb_icd")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
