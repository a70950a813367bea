"""Controlled terminology (CT) mapping and conditional variable assignment.

The CT spec is a study-level CSV listing, per codelist, the submission value
(`term_value`) and the raw values that map to it (`collected_value`,
`term_synonyms`). Assignment helpers write one target variable from one raw
variable, restricted to the rows a condition selects; values already assigned
to the target by an earlier call are kept, so several conditional branches
compose into one variable.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from clinical_derivations.derivations.selection import Condition, evaluate_condition
from clinical_derivations.io import read_table, require_columns
from clinical_derivations.logging_utils import get_logger
from clinical_derivations.validation.pandera_models import CTSpecModel

log = get_logger(__name__)

CT_SPEC_COLUMNS = (
    "codelist_code",
    "term_code",
    "term_value",
    "collected_value",
    "term_preferred_term",
    "term_synonyms",
)


def _key(value: Any) -> str:
    return str(value).strip().upper()


def load_ct_spec(path: str | Path) -> pd.DataFrame:
    spec = read_table(path, name="CT spec")
    require_columns(spec, CT_SPEC_COLUMNS, table="CT spec")
    return CTSpecModel.validate(spec)


def codelist_map(ct_spec: pd.DataFrame, ct_clst: str) -> Dict[str, str]:
    """Normalized raw value -> submission value for one codelist.

    Collected values win over synonyms, which win over the submission values
    themselves.
    """
    require_columns(ct_spec, CT_SPEC_COLUMNS, table="CT spec")
    entries = ct_spec[ct_spec["codelist_code"].astype(str) == str(ct_clst)]
    if entries.empty:
        raise ValueError(f"Codelist {ct_clst!r} not found in CT spec")

    mapping: Dict[str, str] = {}
    for _, row in entries.iterrows():
        mapping.setdefault(_key(row["term_value"]), row["term_value"])
    for _, row in entries.iterrows():
        synonyms = row["term_synonyms"]
        if pd.notna(synonyms):
            for synonym in str(synonyms).split(";"):
                if synonym.strip():
                    mapping[_key(synonym)] = row["term_value"]
    for _, row in entries.iterrows():
        if pd.notna(row["collected_value"]):
            mapping[_key(row["collected_value"])] = row["term_value"]
    return mapping


def ct_map(values: pd.Series, ct_spec: pd.DataFrame, ct_clst: str) -> pd.Series:
    """Map raw values through a codelist; unmatched values pass through unchanged."""
    mapping = codelist_map(ct_spec, ct_clst)
    present = values.notna()
    keys = values[present].map(_key)
    matched = keys.isin(mapping.keys())
    mapped = values.astype(object).copy()
    mapped[present] = np.where(matched, keys.map(mapping), values[present])

    unmatched = sorted(values[present][~matched].astype(str).unique())
    if unmatched:
        log.warning("ct_values_unmapped", codelist=ct_clst, count=int((~matched).sum()), values=unmatched[:10])
    return mapped


def _assign(
    target: pd.DataFrame,
    raw: pd.DataFrame,
    tgt_var: str,
    values: pd.Series,
    condition: Condition,
    raw_var: Optional[str],
) -> pd.DataFrame:
    mask = evaluate_condition(condition, raw)
    if raw_var is not None:
        mask &= raw[raw_var].notna()
    out = target.copy()
    if tgt_var not in out.columns:
        out[tgt_var] = pd.Series(np.nan, index=out.index, dtype=object)
    rows = out.index.intersection(mask.index[mask])
    fill = rows[out.loc[rows, tgt_var].isna().to_numpy()]
    out.loc[fill, tgt_var] = values.loc[fill]
    log.debug("assigned_variable", variable=tgt_var, rows=len(fill))
    return out


def assign_ct(
    target: pd.DataFrame,
    raw: pd.DataFrame,
    raw_var: str,
    tgt_var: str,
    ct_spec: pd.DataFrame,
    ct_clst: str,
    condition: Condition = None,
) -> pd.DataFrame:
    require_columns(raw, [raw_var], table="raw dataset")
    return _assign(target, raw, tgt_var, ct_map(raw[raw_var], ct_spec, ct_clst), condition, raw_var)


def assign_no_ct(
    target: pd.DataFrame,
    raw: pd.DataFrame,
    raw_var: str,
    tgt_var: str,
    condition: Condition = None,
) -> pd.DataFrame:
    require_columns(raw, [raw_var], table="raw dataset")
    return _assign(target, raw, tgt_var, raw[raw_var].astype(object), condition, raw_var)


def hardcode_ct(
    target: pd.DataFrame,
    raw: pd.DataFrame,
    raw_var: str,
    tgt_var: str,
    tgt_val: str,
    ct_spec: pd.DataFrame,
    ct_clst: str,
    condition: Condition = None,
) -> pd.DataFrame:
    """Constant `tgt_val` (checked against the codelist) where `raw_var` is present."""
    require_columns(raw, [raw_var], table="raw dataset")
    mapping = codelist_map(ct_spec, ct_clst)
    if _key(tgt_val) not in mapping:
        raise ValueError(f"{tgt_val!r} is not a term of codelist {ct_clst!r}")
    constant = pd.Series(mapping[_key(tgt_val)], index=raw.index, dtype=object)
    return _assign(target, raw, tgt_var, constant, condition, raw_var)


def hardcode_no_ct(
    target: pd.DataFrame,
    raw: pd.DataFrame,
    raw_var: str,
    tgt_var: str,
    tgt_val: Any,
    condition: Condition = None,
) -> pd.DataFrame:
    require_columns(raw, [raw_var], table="raw dataset")
    constant = pd.Series(tgt_val, index=raw.index, dtype=object)
    return _assign(target, raw, tgt_var, constant, condition, raw_var)


__all__ = [
    "CT_SPEC_COLUMNS",
    "load_ct_spec",
    "codelist_map",
    "ct_map",
    "assign_ct",
    "assign_no_ct",
    "hardcode_ct",
    "hardcode_no_ct",
]
