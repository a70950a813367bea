"""Record identifiers and --SEQ numbering."""
from __future__ import annotations

from typing import Sequence

import pandas as pd

from clinical_derivations.io import require_columns

RECORD_ID_VARS = ("oak_id", "raw_source", "patient_number")


def generate_record_ids(raw: pd.DataFrame, pat_var: str, raw_src: str) -> pd.DataFrame:
    """Tag each raw row with a row id, its source name and the patient number."""
    require_columns(raw, [pat_var], table=raw_src)
    out = raw.copy()
    out.insert(0, "oak_id", range(1, len(out) + 1))
    out.insert(1, "raw_source", raw_src)
    out.insert(2, "patient_number", out[pat_var])
    return out


def derive_seq(
    df: pd.DataFrame,
    tgt_var: str,
    rec_vars: Sequence[str],
    sbj_vars: Sequence[str] = ("USUBJID",),
) -> pd.DataFrame:
    """Number records 1..n within each subject after sorting by `rec_vars`.

    The returned frame is in that sorted order; records equal on every
    `rec_vars` key keep their input order.
    """
    rec_vars, sbj_vars = list(rec_vars), list(sbj_vars)
    require_columns(df, rec_vars + sbj_vars, table="domain")
    ordered = df.sort_values(rec_vars, kind="mergesort", na_position="last")
    ordered[tgt_var] = ordered.groupby(sbj_vars, dropna=False, sort=False).cumcount() + 1
    return ordered
