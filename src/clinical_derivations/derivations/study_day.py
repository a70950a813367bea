"""Study day (--DY) relative to a reference date."""
from __future__ import annotations

import pandas as pd

from clinical_derivations.io import require_columns
from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)


def _iso_date(values: pd.Series) -> pd.Series:
    # only the calendar date of a complete ISO value counts
    text = values.astype("string").str.slice(0, 10)
    return pd.to_datetime(text, format="%Y-%m-%d", errors="coerce")


def compute_study_day(target: pd.Series, reference: pd.Series) -> pd.Series:
    """Day 1 is the reference date; the day before it is -1 (there is no day 0)."""
    delta = (_iso_date(target) - _iso_date(reference)).dt.days
    study_day = delta.where(delta < 0, delta + 1)
    return study_day.astype("Int64")


def derive_study_day(
    sdtm_in: pd.DataFrame,
    dm_domain: pd.DataFrame,
    tgdt: str,
    refdt: str,
    study_day_var: str,
    merge_key: str = "USUBJID",
) -> pd.DataFrame:
    """Add `study_day_var` = study day of `tgdt` relative to `refdt`.

    With a separate reference dataset, `refdt` is taken once per `merge_key`;
    subjects without a unique reference date get a missing study day. When the
    reference dataset is `sdtm_in` itself, each record uses its own `refdt`.
    """
    require_columns(sdtm_in, [tgdt], table="sdtm_in")
    if tgdt.replace("DTC", "") != study_day_var.replace("DY", ""):
        log.warning("study_day_name_mismatch", target_date=tgdt, study_day=study_day_var)

    out = sdtm_in.copy()
    if dm_domain is sdtm_in:
        require_columns(sdtm_in, [refdt], table="sdtm_in")
        log.warning(
            "study_day_self_reference",
            study_day=study_day_var,
            reference=refdt,
            detail="reference dates come from the target dataset, not a demographics backbone",
        )
        reference = out[refdt]
    else:
        require_columns(out, [merge_key], table="sdtm_in")
        require_columns(dm_domain, [merge_key, refdt], table="reference dataset")
        refs = dm_domain[[merge_key, refdt]].drop_duplicates()
        duplicated = refs[merge_key].duplicated(keep=False)
        if duplicated.any():
            log.warning("reference_date_not_unique", subjects=int(refs.loc[duplicated, merge_key].nunique()))
            refs = refs[~duplicated]
        reference = out[[merge_key]].merge(refs, on=merge_key, how="left")[refdt]
        reference.index = out.index

    out[study_day_var] = compute_study_day(out[tgdt], reference)
    return out
