import numpy as np
import pandas as pd
import pytest

from clinical_derivations.reporting.ae_plots import (
    clopper_pearson,
    plot_severity_by_arm,
    plot_top_aes,
    severity_counts,
    top_ae_frequencies,
)
from clinical_derivations.reporting.ae_summary import (
    ANY_TEAE_LABEL,
    OVERALL_COLUMN,
    _format_cell,
    build_ae_summary,
    write_ae_summary_html,
)


@pytest.fixture
def adsl():
    return pd.DataFrame({
        "USUBJID": ["A1", "A2", "B1", "B2"],
        "ACTARM": ["Placebo", "Placebo", "Drug", "Drug"],
    })


@pytest.fixture
def adae():
    return pd.DataFrame({
        "USUBJID": ["A1", "A1", "A1", "B1", "B2"],
        "ACTARM": ["Placebo", "Placebo", "Placebo", "Drug", "Drug"],
        "AESOC": ["SKIN", "SKIN", "NERVOUS", "SKIN", "NERVOUS"],
        "AEDECOD": ["PRURITUS", "ERYTHEMA", "HEADACHE", "PRURITUS", "HEADACHE"],
        "AESEV": ["MILD", "MODERATE", np.nan, "MILD", "SEVERE"],
        "TRTEMFL": ["Y", "Y", "Y", "Y", np.nan],
    })


def test_subjects_counted_once_per_row(adae, adsl):
    summary = build_ae_summary(adae, adsl)
    counts = summary.counts
    assert list(counts.index) == [ANY_TEAE_LABEL, "SKIN", "NERVOUS"]
    assert counts.loc[ANY_TEAE_LABEL].to_dict() == {"Drug": 1, "Placebo": 1, OVERALL_COLUMN: 2}
    assert counts.loc["SKIN"].to_dict() == {"Drug": 1, "Placebo": 1, OVERALL_COLUMN: 2}
    # the Drug NERVOUS record is not treatment emergent
    assert counts.loc["NERVOUS"].to_dict() == {"Drug": 0, "Placebo": 1, OVERALL_COLUMN: 1}
    assert summary.denominators.to_dict() == {"Drug": 2, "Placebo": 2, OVERALL_COLUMN: 4}


def test_formatted_cells(adae, adsl):
    formatted = build_ae_summary(adae, adsl).formatted()
    assert formatted.loc["SKIN", "Placebo"] == "1 (50%)"
    assert formatted.loc["NERVOUS", "Drug"] == "0 (0%)"
    assert _format_cell(1, 0.4) == "1 (<1%)"


def test_html_table_written(tmp_path, adae, adsl):
    path = write_ae_summary_html(build_ae_summary(adae, adsl), tmp_path / "ae_summary_table.html")
    html = path.read_text(encoding="utf-8")
    assert "<table>" in html
    assert ANY_TEAE_LABEL in html
    assert "N = 4" in html


def test_no_teae_gives_zero_counts(adae, adsl):
    summary = build_ae_summary(adae.assign(TRTEMFL="N"), adsl)
    assert list(summary.counts.index) == [ANY_TEAE_LABEL]
    assert summary.counts.loc[ANY_TEAE_LABEL].sum() == 0


def test_clopper_pearson_bounds():
    low, high = clopper_pearson(5, 10)
    assert low == pytest.approx(0.1871, abs=1e-3)
    assert high == pytest.approx(0.8129, abs=1e-3)
    assert clopper_pearson(0, 10)[0] == 0.0


def test_top_ae_frequencies_use_subject_denominator(adae):
    freq = top_ae_frequencies(adae, n=1)
    # HEADACHE and PRURITUS tie at 2 of 3 subjects
    assert freq["AEDECOD"].tolist() == ["HEADACHE", "PRURITUS"]
    assert freq["N"].tolist() == [3, 3]
    assert freq["pct"].iloc[0] == pytest.approx(2 / 3)
    assert (freq["low"] <= freq["pct"]).all() and (freq["pct"] <= freq["high"]).all()


def test_figures_written(tmp_path, adae):
    plot_1 = plot_severity_by_arm(severity_counts(adae), tmp_path / "plot_1.png", dpi=50)
    plot_2 = plot_top_aes(top_ae_frequencies(adae), tmp_path / "plot_2.png", dpi=50)
    assert plot_1.stat().st_size > 0
    assert plot_2.stat().st_size > 0
