import pandas as pd
import pytest

from clinical_derivations.derivations.dates import convert_dtc_to_dt
from clinical_derivations.derivations.extreme import Event, aggregate_extreme, derive_vars_extreme_event


def _sources():
    vs = pd.DataFrame({"USUBJID": ["S3"], "VSDTC": ["2024-02-10"], "VSSTRESN": [72.0]})
    ae = pd.DataFrame({"USUBJID": ["S3", "S3"], "AESTDTC": ["2024-03-01", "2024-01-15"]})
    ds = pd.DataFrame({"USUBJID": ["S3"], "DSSTDTC": ["2024-04"]})
    return [
        (vs, lambda d: d["VSSTRESN"].notna(), lambda d: convert_dtc_to_dt(d["VSDTC"])),
        (ae, None, lambda d: convert_dtc_to_dt(d["AESTDTC"])),
        (ds, None, lambda d: convert_dtc_to_dt(d["DSSTDTC"])),
    ]


def test_latest_complete_date_wins_and_partial_date_is_ignored():
    result = aggregate_extreme(_sources(), by_vars=["USUBJID"], mode="last")
    assert result.set_index("USUBJID")["value"].to_dict() == {"S3": pd.Timestamp("2024-03-01")}


def test_source_order_does_not_change_result():
    forward = aggregate_extreme(_sources(), by_vars=["USUBJID"], mode="last")
    backward = aggregate_extreme(list(reversed(_sources())), by_vars=["USUBJID"], mode="last")
    pd.testing.assert_frame_equal(forward, backward)


def test_earliest_mode():
    result = aggregate_extreme(_sources(), by_vars=["USUBJID"], mode="first", value_name="FIRSTDT")
    assert result["FIRSTDT"].tolist() == [pd.Timestamp("2024-01-15")]


def test_derive_vars_extreme_event_carries_source_and_keeps_subjects():
    adsl = pd.DataFrame({"USUBJID": ["S3", "S4"]})
    vs = pd.DataFrame({"USUBJID": ["S3"], "VSDTC": ["2024-02-10"]})
    ae = pd.DataFrame({"USUBJID": ["S3"], "AESTDTC": ["2024-03-01"]})
    events = [
        Event("vs", set_values_to={"LSTDT": lambda d: convert_dtc_to_dt(d["VSDTC"]), "SRC": "VS"}),
        Event("ae", set_values_to={"LSTDT": lambda d: convert_dtc_to_dt(d["AESTDTC"]), "SRC": "AE"}),
    ]
    out = derive_vars_extreme_event(
        adsl,
        by_vars=["USUBJID"],
        events=events,
        source_datasets={"vs": vs, "ae": ae},
        new_vars=["LSTDT", "SRC"],
        mode="last",
    )
    assert out["USUBJID"].tolist() == ["S3", "S4"]
    assert out.loc[0, "LSTDT"] == pd.Timestamp("2024-03-01")
    assert out.loc[0, "SRC"] == "AE"
    assert pd.isna(out.loc[1, "LSTDT"])


def test_event_on_unknown_dataset_raises():
    adsl = pd.DataFrame({"USUBJID": ["S3"]})
    with pytest.raises(ValueError):
        derive_vars_extreme_event(
            adsl,
            by_vars=["USUBJID"],
            events=[Event("lb", set_values_to={"LSTDT": "2024-01-01"})],
            source_datasets={},
            new_vars=["LSTDT"],
        )
