"""SDTM Disposition (DS) domain from the raw disposition CRF extract."""
from __future__ import annotations

from pathlib import Path

import pandas as pd

from clinical_derivations.config import get_config
from clinical_derivations.derivations.dates import assemble_dtc
from clinical_derivations.derivations.sequence import RECORD_ID_VARS, derive_seq, generate_record_ids
from clinical_derivations.derivations.study_day import derive_study_day
from clinical_derivations.derivations.terminology import (
    assign_ct,
    assign_no_ct,
    hardcode_ct,
    hardcode_no_ct,
    load_ct_spec,
)
from clinical_derivations.io import convert_blanks_to_na, read_table, require_columns, write_csv
from clinical_derivations.logging_utils import get_logger
from clinical_derivations.validation.pandera_models import DSDomainModel

DS_RAW_COLUMNS = (
    "STUDY",
    "PATNUM",
    "INSTANCE",
    "IT.DSTERM",
    "IT.DSDECOD",
    "OTHERSP",
    "IT.DSSTDAT",
    "DSDTCOL",
    "DSTMCOL",
)

DS_COLUMNS = [
    "STUDYID", "DOMAIN", "USUBJID", "DSSEQ", "DSTERM",
    "DSDECOD", "DSCAT", "VISITNUM", "VISIT",
    "DSDTC", "DSSTDTC", "DSSTDY",
]

DISPOSITION_CODELIST = "C66727"
CATEGORY_CODELIST = "C74558"


def _as_text(values: pd.Series) -> pd.Series:
    # missing identifiers stay missing instead of becoming "nan"
    return values.where(values.isna(), values.astype(str))


def build_ds(ds_raw: pd.DataFrame, ct_spec: pd.DataFrame) -> pd.DataFrame:
    log = get_logger("build_ds")
    require_columns(ds_raw, DS_RAW_COLUMNS, table="ds_raw")
    raw = generate_record_ids(convert_blanks_to_na(ds_raw), pat_var="PATNUM", raw_src="ds_raw")
    ds = raw[list(RECORD_ID_VARS)].copy()

    has_othersp = raw["OTHERSP"].notna()
    has_decod = raw["IT.DSDECOD"].notna()
    randomized = raw["IT.DSDECOD"] == "Randomized"

    # Reported term: free-text "other" reason when given, else the CRF term
    ds = assign_ct(ds, raw, "OTHERSP", "DSTERM", ct_spec, DISPOSITION_CODELIST, condition=has_othersp)
    ds = assign_ct(ds, raw, "IT.DSTERM", "DSTERM", ct_spec, DISPOSITION_CODELIST, condition=~has_othersp)

    ds["DSSTDTC"] = assemble_dtc(raw, ["IT.DSSTDAT"], ["m-d-y"])

    ds = assign_ct(ds, raw, "IT.DSDECOD", "DSDECOD", ct_spec, DISPOSITION_CODELIST, condition=~has_othersp)
    ds = assign_ct(ds, raw, "OTHERSP", "DSDECOD", ct_spec, DISPOSITION_CODELIST, condition=has_othersp)

    ds = hardcode_ct(
        ds, raw, "IT.DSDECOD", "DSCAT", "PROTOCOL MILESTONE", ct_spec, CATEGORY_CODELIST,
        condition=randomized,
    )
    ds = hardcode_ct(
        ds, raw, "IT.DSDECOD", "DSCAT", "DISPOSITION EVENT", ct_spec, CATEGORY_CODELIST,
        condition=~randomized & has_decod,
    )
    ds = hardcode_no_ct(ds, raw, "OTHERSP", "DSCAT", "OTHER EVENT", condition=has_othersp & ~has_decod)

    ds["DSDTC"] = assemble_dtc(raw, ["DSTMCOL", "DSDTCOL"], ["H:M", "m-d-y"])

    ds = assign_no_ct(ds, raw, "STUDY", "STUDYID")
    ds["DOMAIN"] = "DS"
    ds = assign_no_ct(ds, raw, "PATNUM", "USUBJID")
    ds["USUBJID"] = _as_text(ds["USUBJID"])

    ds = derive_seq(ds, "DSSEQ", rec_vars=["USUBJID", "DSTERM"], sbj_vars=["USUBJID"])

    ds = assign_ct(ds, raw, "INSTANCE", "VISITNUM", ct_spec, "VISITNUM")
    ds["VISITNUM"] = pd.to_numeric(ds["VISITNUM"], errors="coerce").astype(float)
    ds = assign_ct(ds, raw, "INSTANCE", "VISIT", ct_spec, "VISIT")

    # Study day of each record counts from its own collection date
    ds = derive_study_day(
        sdtm_in=ds,
        dm_domain=ds,
        tgdt="DSSTDTC",
        refdt="DSDTC",
        study_day_var="DSSTDY",
        merge_key="patient_number",
    )

    out = ds[DS_COLUMNS].reset_index(drop=True)
    out["STUDYID"] = _as_text(out["STUDYID"])
    validated = DSDomainModel.validate(out)
    log.info("ds_domain_built", rows=len(validated), subjects=int(validated["USUBJID"].nunique()))
    return validated


def create_ds_domain(
    raw_dir: str | Path | None = None,
    ct_spec_path: str | Path | None = None,
    output_path: str | Path | None = None,
) -> Path:
    cfg = get_config()
    raw_path = Path(raw_dir or cfg.paths.raw_dir) / "ds_raw.csv"
    ct_spec = load_ct_spec(ct_spec_path or cfg.paths.ct_spec)
    ds = build_ds(read_table(raw_path, name="ds_raw"), ct_spec)
    return write_csv(ds, output_path or cfg.output_path(cfg.output.ds_csv))


if __name__ == "__main__":
    out = create_ds_domain()
    print(f"Wrote {out}")
