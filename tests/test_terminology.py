import numpy as np
import pandas as pd
import pytest

from clinical_derivations.derivations.terminology import (
    assign_ct,
    assign_no_ct,
    codelist_map,
    ct_map,
    hardcode_ct,
    hardcode_no_ct,
    load_ct_spec,
)


def test_ct_map_uses_collected_values_and_synonyms(ct_spec):
    values = pd.Series(["completed", "Done", "Moved away", np.nan])
    mapped = ct_map(values, ct_spec, "C66727")
    assert mapped.tolist()[:3] == ["COMPLETED", "COMPLETED", "Moved away"]
    assert pd.isna(mapped.iloc[3])


def test_unknown_codelist_raises(ct_spec):
    with pytest.raises(ValueError):
        codelist_map(ct_spec, "C99999")


def test_hardcode_ct_rejects_values_outside_codelist(ct_spec):
    raw = pd.DataFrame({"IT.DSDECOD": ["Randomized"]})
    with pytest.raises(ValueError):
        hardcode_ct(pd.DataFrame(index=raw.index), raw, "IT.DSDECOD", "DSCAT", "STUDY MILESTONE", ct_spec, "C74558")


def test_conditional_assignments_compose(ct_spec):
    raw = pd.DataFrame({
        "DECOD": ["Completed", np.nan, "Adverse Event"],
        "OTHER": [np.nan, "Moved away", "Relocated"],
    })
    has_other = raw["OTHER"].notna()
    ds = pd.DataFrame(index=raw.index)
    ds = assign_ct(ds, raw, "DECOD", "DSDECOD", ct_spec, "C66727", condition=~has_other)
    ds = assign_ct(ds, raw, "OTHER", "DSDECOD", ct_spec, "C66727", condition=has_other)
    assert ds["DSDECOD"].tolist() == ["COMPLETED", "Moved away", "Relocated"]


def test_earlier_assignment_is_kept(ct_spec):
    raw = pd.DataFrame({"A": ["Completed", np.nan], "B": ["x", "y"]})
    ds = assign_ct(pd.DataFrame(index=raw.index), raw, "A", "DSDECOD", ct_spec, "C66727")
    ds = assign_no_ct(ds, raw, "B", "DSDECOD")
    assert ds["DSDECOD"].tolist() == ["COMPLETED", "y"]


def test_hardcode_only_where_raw_value_present(ct_spec):
    raw = pd.DataFrame({"IT.DSDECOD": ["Randomized", np.nan]})
    ds = hardcode_ct(
        pd.DataFrame(index=raw.index), raw, "IT.DSDECOD", "DSCAT", "protocol milestone", ct_spec, "C74558"
    )
    assert ds["DSCAT"].iloc[0] == "PROTOCOL MILESTONE"
    assert pd.isna(ds["DSCAT"].iloc[1])

    ds = hardcode_no_ct(ds, raw, "IT.DSDECOD", "FLAG", "Y")
    assert ds["FLAG"].iloc[0] == "Y"
    assert pd.isna(ds["FLAG"].iloc[1])


def test_load_ct_spec_requires_columns(tmp_path, ct_spec):
    path = tmp_path / "sdtm_ct.csv"
    ct_spec.to_csv(path, index=False)
    loaded = load_ct_spec(path)
    assert codelist_map(loaded, "VISITNUM")["BASELINE"] == "3"

    ct_spec.drop(columns=["term_synonyms"]).to_csv(path, index=False)
    with pytest.raises(ValueError):
        load_ct_spec(path)
