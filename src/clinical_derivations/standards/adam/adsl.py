"""ADaM subject-level analysis dataset (ADSL) from the SDTM DM, EX, AE, VS and DS domains."""
from __future__ import annotations

from pathlib import Path

import pandas as pd

from clinical_derivations.config import get_config
from clinical_derivations.derivations.dates import convert_dtc_to_dt, derive_vars_dtm
from clinical_derivations.derivations.extreme import Event, derive_vars_extreme_event
from clinical_derivations.derivations.lookup import between, derive_vars_cat, is_missing, is_present, lookup_table
from clinical_derivations.derivations.selection import derive_vars_merged
from clinical_derivations.io import convert_blanks_to_na, read_domains, require_columns, write_csv
from clinical_derivations.logging_utils import get_logger
from clinical_derivations.validation.pandera_models import ADSLModel

BY_VARS = ["STUDYID", "USUBJID"]

# Boundaries and labels kept as specified for the study, "18-64" covers 18-50
AGEGR9_DEFINITION = [
    (lambda r: r["AGE"] < 18, "<18", 1),
    (lambda r: between(r["AGE"], 18, 50), "18-64", 2),
    (lambda r: r["AGE"] > 50, ">50", 3),
    (lambda r: is_missing(r["AGE"]), "Missing", float("nan")),
]

ITTFL_DEFINITION = [
    (lambda r: is_present(r["ARM"]), "Y"),
    (lambda r: is_missing(r["ARM"]), "N"),
]

LSTALVDT_ORDER = ["VSDTC", "VSSEQ", "AESTDTC", "AESEQ", "DSSTDTC", "DSSEQ"]


def qualifying_exposure(ex: pd.DataFrame) -> pd.Series:
    """Active dose given, or a zero-dose placebo administration."""
    dose = pd.to_numeric(ex["EXDOSE"], errors="coerce")
    placebo = ex["EXTRT"].astype("string").str.contains("PLACEBO", na=False)
    return ((dose > 0) | ((dose == 0) & placebo)).fillna(False)


def derive_age_groups(adsl: pd.DataFrame) -> pd.DataFrame:
    rules = lookup_table(AGEGR9_DEFINITION, ["AGEGR9", "AGEGR9N"])
    out = derive_vars_cat(adsl, rules["AGEGR9"], "AGEGR9")
    out = derive_vars_cat(out, rules["AGEGR9N"], "AGEGR9N")
    out["AGEGR9N"] = out["AGEGR9N"].astype(float)
    return out


def derive_treatment_start(adsl: pd.DataFrame, ex: pd.DataFrame) -> pd.DataFrame:
    ex_ext = derive_vars_dtm(
        ex,
        dtc="EXSTDTC",
        new_vars_prefix="EXST",
        time_imputation="first",
        highest_imputation="h",
        ignore_seconds_flag=True,
    )
    return derive_vars_merged(
        adsl,
        dataset_add=ex_ext,
        by_vars=BY_VARS,
        new_vars={"TRTSDTM": "EXSTDTM", "TRTSTMF": "EXSTTMF"},
        filter_add=lambda d: qualifying_exposure(d) & d["EXSTDTM"].notna(),
        order=["EXSTDTM", "EXSEQ"],
        mode="first",
        dataset_name="ex",
    )


def derive_treatment_end(adsl: pd.DataFrame, ex: pd.DataFrame) -> pd.DataFrame:
    ex_ext = derive_vars_dtm(ex, dtc="EXENDTC", new_vars_prefix="EXEN", time_imputation="last")
    return derive_vars_merged(
        adsl,
        dataset_add=ex_ext,
        by_vars=BY_VARS,
        new_vars={"TRTEDTM": "EXENDTM"},
        filter_add=lambda d: qualifying_exposure(d) & d["EXENDTM"].notna(),
        order=["EXENDTM", "EXSEQ"],
        mode="last",
        dataset_name="ex",
    )


def derive_last_alive_date(
    adsl: pd.DataFrame, ae: pd.DataFrame, vs: pd.DataFrame, ds: pd.DataFrame
) -> pd.DataFrame:
    """LSTALVDT: latest complete date among vitals, AE onset, disposition and treatment end."""
    events = [
        Event(
            dataset_name="vs",
            condition=lambda d: (d["VSSTRESN"].notna() | d["VSSTRESC"].notna()) & d["VSDTC"].notna(),
            set_values_to={"LSTALVDT": lambda d: convert_dtc_to_dt(d["VSDTC"]), "LALVSRC": "VS"},
        ),
        Event(
            dataset_name="ae",
            condition=lambda d: d["AESTDTC"].notna(),
            set_values_to={"LSTALVDT": lambda d: convert_dtc_to_dt(d["AESTDTC"]), "LALVSRC": "AE"},
        ),
        Event(
            dataset_name="ds",
            condition=lambda d: d["DSSTDTC"].notna(),
            set_values_to={"LSTALVDT": lambda d: convert_dtc_to_dt(d["DSSTDTC"]), "LALVSRC": "DS"},
        ),
        Event(
            dataset_name="adsl",
            condition=lambda d: d["TRTEDTM"].notna(),
            set_values_to={"LSTALVDT": lambda d: d["TRTEDTM"].dt.normalize(), "LALVSRC": "ADSL"},
        ),
    ]
    return derive_vars_extreme_event(
        adsl,
        by_vars=BY_VARS,
        events=events,
        source_datasets={"ae": ae, "vs": vs, "ds": ds, "adsl": adsl},
        new_vars=["LSTALVDT", "LALVSRC"],
        mode="last",
        order=LSTALVDT_ORDER,
    )


def build_adsl(
    dm: pd.DataFrame,
    ds: pd.DataFrame,
    ex: pd.DataFrame,
    ae: pd.DataFrame,
    vs: pd.DataFrame,
) -> pd.DataFrame:
    log = get_logger("build_adsl")
    require_columns(dm, BY_VARS + ["AGE", "ARM"], table="dm")
    require_columns(ex, BY_VARS + ["EXTRT", "EXDOSE", "EXSEQ", "EXSTDTC", "EXENDTC"], table="ex")
    require_columns(ae, BY_VARS + ["AESTDTC", "AESEQ"], table="ae")
    require_columns(vs, BY_VARS + ["VSSTRESN", "VSSTRESC", "VSDTC", "VSSEQ"], table="vs")
    require_columns(ds, BY_VARS + ["DSSTDTC", "DSSEQ"], table="ds")

    dm, ds, ex, ae, vs = (convert_blanks_to_na(df) for df in (dm, ds, ex, ae, vs))
    if dm.duplicated(subset=BY_VARS).any():
        raise ValueError("dm must hold one record per subject")

    adsl = dm.drop(columns=["DOMAIN"], errors="ignore")
    adsl["AGE"] = pd.to_numeric(adsl["AGE"], errors="coerce")
    subjects = len(adsl)

    adsl = derive_age_groups(adsl)
    adsl = derive_treatment_start(adsl, ex)
    adsl = derive_vars_cat(adsl, ITTFL_DEFINITION, "ITTFL")
    adsl = derive_treatment_end(adsl, ex)
    adsl = derive_last_alive_date(adsl, ae=ae, vs=vs, ds=ds)

    if len(adsl) != subjects:
        raise RuntimeError(f"ADSL row count changed from {subjects} to {len(adsl)}")
    validated = ADSLModel.validate(adsl)
    log.info(
        "adsl_built",
        rows=len(validated),
        treated=int(validated["TRTSDTM"].notna().sum()),
        with_last_alive_date=int(validated["LSTALVDT"].notna().sum()),
    )
    return validated


def create_adsl(sdtm_dir: str | Path | None = None, output_path: str | Path | None = None) -> Path:
    cfg = get_config()
    domains = read_domains(sdtm_dir or cfg.paths.sdtm_dir, ["dm", "ds", "ex", "ae", "vs"])
    adsl = build_adsl(**domains)
    return write_csv(adsl, output_path or cfg.output_path(cfg.output.adsl_csv))


if __name__ == "__main__":
    out = create_adsl()
    print(f"Wrote {out}")
