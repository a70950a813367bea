import pandas as pd
import pytest

from clinical_derivations.derivations.dates import convert_dtc_to_dt
from clinical_derivations.derivations.extreme import Event, derive_vars_extreme_event
from clinical_derivations.io import MissingColumnError
from clinical_derivations.standards.adam.adsl import (
    LSTALVDT_ORDER,
    build_adsl,
    create_adsl,
    derive_last_alive_date,
    qualifying_exposure,
)


def test_qualifying_exposure():
    ex = pd.DataFrame({
        "EXTRT": ["XANOMELINE", "PLACEBO", "XANOMELINE", "PLACEBO"],
        "EXDOSE": [54, 0, 0, None],
    })
    assert qualifying_exposure(ex).tolist() == [True, True, False, False]


def test_treatment_start_uses_first_valid_dose(sdtm_domains):
    adsl = build_adsl(**sdtm_domains).set_index("USUBJID")
    # the 2024-01-03 record has zero dose of active drug and does not qualify
    assert adsl.loc["S1", "TRTSDTM"] == pd.Timestamp("2024-01-05 08:00")
    assert adsl.loc["S1", "TRTSTMF"] == "M"
    assert adsl.loc["S1", "TRTEDTM"] == pd.Timestamp("2024-02-01 23:59:59")


def test_untreated_subject_keeps_row(sdtm_domains):
    adsl = build_adsl(**sdtm_domains).set_index("USUBJID")
    assert list(adsl.index) == ["S1", "S2"]
    assert pd.isna(adsl.loc["S2", "TRTSDTM"])
    assert pd.isna(adsl.loc["S2", "TRTEDTM"])
    assert adsl.loc["S2", "ITTFL"] == "N"
    assert adsl.loc["S1", "ITTFL"] == "Y"
    assert adsl.loc["S2", "AGEGR9"] == "<18"


def test_last_alive_date_across_sources(sdtm_domains):
    adsl = build_adsl(**sdtm_domains).set_index("USUBJID")
    # AE onset beats vitals and treatment end; the partial DS date does not count
    assert adsl.loc["S1", "LSTALVDT"] == pd.Timestamp("2024-03-01")
    assert adsl.loc["S1", "LALVSRC"] == "AE"
    # vitals without a result do not count
    assert adsl.loc["S2", "LSTALVDT"] == pd.Timestamp("2024-01-25")
    assert adsl.loc["S2", "LALVSRC"] == "DS"


def test_duplicate_subject_in_dm_is_rejected(sdtm_domains):
    dm = sdtm_domains["dm"]
    sdtm_domains["dm"] = pd.concat([dm, dm.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError):
        build_adsl(**sdtm_domains)


def test_missing_source_column_names_table(sdtm_domains):
    sdtm_domains["ex"] = sdtm_domains["ex"].drop(columns=["EXDOSE"])
    with pytest.raises(MissingColumnError) as err:
        build_adsl(**sdtm_domains)
    assert err.value.table == "ex"


def test_create_adsl_from_directory(tmp_path, sdtm_domains):
    sdtm_dir = tmp_path / "sdtm"
    sdtm_dir.mkdir()
    for name, df in sdtm_domains.items():
        df.to_csv(sdtm_dir / f"{name}.csv", index=False)
    out = create_adsl(sdtm_dir=sdtm_dir, output_path=tmp_path / "adsl.csv")
    written = pd.read_csv(out)
    assert written["USUBJID"].tolist() == ["S1", "S2"]
    assert written["LSTALVDT"].tolist() == ["2024-03-01", "2024-01-25"]


def _last_alive_inputs():
    adsl = pd.DataFrame({
        "STUDYID": ["STUDY1"],
        "USUBJID": ["S1"],
        "TRTEDTM": pd.to_datetime(["2024-02-01 23:59:59"]),
    })
    vs = pd.DataFrame({
        "STUDYID": ["STUDY1"],
        "USUBJID": ["S1"],
        "VSSEQ": [1],
        "VSSTRESN": [70.0],
        "VSSTRESC": ["70"],
        "VSDTC": ["2024-03-01"],
    })
    ae = pd.DataFrame({"STUDYID": ["STUDY1"], "USUBJID": ["S1"], "AESEQ": [1], "AESTDTC": ["2024-03-01"]})
    ds = pd.DataFrame({"STUDYID": ["STUDY1"], "USUBJID": ["S1"], "DSSEQ": [1], "DSSTDTC": ["2024-01-10"]})
    return adsl, ae, vs, ds


def test_last_alive_date_tie_prefers_source_without_vitals_key():
    adsl, ae, vs, ds = _last_alive_inputs()
    out = derive_last_alive_date(adsl, ae=ae, vs=vs, ds=ds)
    assert out.loc[0, "LSTALVDT"] == pd.Timestamp("2024-03-01")
    # equal dates fall to the tie-break keys; a missing VSDTC sorts last, so AE is the last candidate
    assert out.loc[0, "LALVSRC"] == "AE"


def test_tied_event_winner_ignores_event_order():
    adsl, ae, vs, _ = _last_alive_inputs()
    events = [
        Event("vs", set_values_to={"LSTALVDT": lambda d: convert_dtc_to_dt(d["VSDTC"]), "LALVSRC": "VS"}),
        Event("ae", set_values_to={"LSTALVDT": lambda d: convert_dtc_to_dt(d["AESTDTC"]), "LALVSRC": "AE"}),
    ]
    kwargs = dict(
        by_vars=["STUDYID", "USUBJID"],
        source_datasets={"vs": vs, "ae": ae},
        new_vars=["LSTALVDT", "LALVSRC"],
        order=LSTALVDT_ORDER,
    )
    forward = derive_vars_extreme_event(adsl, events=events, **kwargs)
    backward = derive_vars_extreme_event(adsl, events=events[::-1], **kwargs)
    assert forward.loc[0, "LALVSRC"] == "AE"
    pd.testing.assert_frame_equal(forward, backward)


def test_last_alive_date_reapplied_is_unchanged():
    adsl, ae, vs, ds = _last_alive_inputs()
    once = derive_last_alive_date(adsl, ae=ae, vs=vs, ds=ds)
    twice = derive_last_alive_date(once, ae=ae, vs=vs, ds=ds)
    pd.testing.assert_frame_equal(once, twice)
