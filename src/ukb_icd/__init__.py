"""
ICD diagnosis lookups and frequency summaries for UK Biobank style datasets.
"""

from ukb_icd.codes import get_code_table, icd_code_meaning, icd_keyword, load_code_table
from ukb_icd.diagnosis import icd_diagnosis
from ukb_icd.prevalence import icd_freq_by, icd_prevalence
from ukb_icd.schema import infer_dataset_schema, load_dataset_schema

__all__ = [
    "get_code_table",
    "icd_code_meaning",
    "icd_diagnosis",
    "icd_freq_by",
    "icd_keyword",
    "icd_prevalence",
    "infer_dataset_schema",
    "load_code_table",
    "load_dataset_schema",
]
