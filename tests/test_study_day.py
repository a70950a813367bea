import pandas as pd

from clinical_derivations.derivations.sequence import derive_seq, generate_record_ids
from clinical_derivations.derivations.study_day import compute_study_day, derive_study_day


def test_no_day_zero():
    target = pd.Series(["2024-01-10", "2024-01-09", "2024-01-08", "2024-01-10T08:00", "2024-01", None])
    reference = pd.Series(["2024-01-09"] * 6)
    days = compute_study_day(target, reference)
    assert str(days.dtype) == "Int64"
    assert days.tolist()[:4] == [2, 1, -1, 2]
    assert days.isna().tolist()[4:] == [True, True]


def test_reference_from_demographics():
    ae = pd.DataFrame({"USUBJID": ["A", "B", "C"], "AESTDTC": ["2024-01-03", "2024-01-03", "2024-01-03"]})
    dm = pd.DataFrame({
        "USUBJID": ["A", "B", "B"],
        "RFSTDTC": ["2024-01-01", "2024-01-01", "2024-02-01"],
    })
    out = derive_study_day(ae, dm, tgdt="AESTDTC", refdt="RFSTDTC", study_day_var="AESTDY")
    assert out["AESTDY"].iloc[0] == 3
    # B has two reference dates, C has none
    assert out["AESTDY"].isna().tolist() == [False, True, True]


def test_self_reference_uses_each_records_own_date():
    ds = pd.DataFrame({
        "USUBJID": ["A", "A"],
        "DSSTDTC": ["2024-01-02", "2024-01-05"],
        "DSDTC": ["2024-01-02T09:30", "2024-01-01"],
    })
    out = derive_study_day(ds, ds, tgdt="DSSTDTC", refdt="DSDTC", study_day_var="DSSTDY")
    assert out["DSSTDY"].tolist() == [1, 5]


def test_derive_seq_numbers_within_subject():
    raw = generate_record_ids(
        pd.DataFrame({"PATNUM": ["2", "1", "2"], "TERM": ["B", "Z", "A"]}), pat_var="PATNUM", raw_src="ds_raw"
    )
    assert raw["oak_id"].tolist() == [1, 2, 3]
    assert set(raw["raw_source"]) == {"ds_raw"}

    out = derive_seq(raw, "DSSEQ", rec_vars=["PATNUM", "TERM"], sbj_vars=["PATNUM"])
    assert out[["PATNUM", "TERM", "DSSEQ"]].values.tolist() == [["1", "Z", 1], ["2", "A", 1], ["2", "B", 2]]
