import os

import numpy as np
import pandas as pd
import pytest

from clinical_derivations.config import get_config


@pytest.fixture(scope="session", autouse=True)
def set_env():
    # No configs/config.test.yaml exists, so the built-in defaults apply
    os.environ["ENV"] = "test"
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def ct_spec():
    rows = [
        ("C66727", "C41331", "COMPLETED", "Completed", "Complete;Done"),
        ("C66727", "C41333", "ADVERSE EVENT", "Adverse Event", None),
        ("C66727", "C114209", "RANDOMIZED", "Randomized", None),
        ("C74558", "C74590", "PROTOCOL MILESTONE", "Protocol Milestone", None),
        ("C74558", "C74591", "DISPOSITION EVENT", "Disposition Event", None),
        ("C74558", "C74592", "OTHER EVENT", "Other Event", None),
        ("VISIT", None, "BASELINE", "Baseline", None),
        ("VISIT", None, "WEEK 12", "Week 12", None),
        ("VISIT", None, "WEEK 26", "Week 26", None),
        ("VISITNUM", None, "3", "Baseline", None),
        ("VISITNUM", None, "9", "Week 12", None),
        ("VISITNUM", None, "13", "Week 26", None),
    ]
    return pd.DataFrame(
        [
            {
                "codelist_code": code,
                "term_code": term_code,
                "term_value": value,
                "collected_value": collected,
                "term_preferred_term": value.title(),
                "term_synonyms": synonyms,
            }
            for code, term_code, value, collected, synonyms in rows
        ]
    )


@pytest.fixture
def ds_raw():
    return pd.DataFrame({
        "STUDY": ["CDISCPILOT01"] * 3,
        "PATNUM": ["701-1015", "701-1015", "701-1023"],
        "INSTANCE": ["Baseline", "Week 26", "Week 12"],
        "IT.DSTERM": ["Randomized", "Completed", "Other"],
        "IT.DSDECOD": ["Randomized", "Completed", np.nan],
        "OTHERSP": [np.nan, np.nan, "Final Retrieval Visit"],
        "IT.DSSTDAT": ["01-02-2024", "07-01-2024", "03-UN-2024"],
        "DSDTCOL": ["01-02-2024", "07-01-2024", "03-10-2024"],
        "DSTMCOL": ["09:30", np.nan, "14:05"],
    })


@pytest.fixture
def sdtm_domains():
    """Two subjects: S1 treated with complete dates, S2 never dosed."""
    dm = pd.DataFrame({
        "STUDYID": ["STUDY1", "STUDY1"],
        "DOMAIN": ["DM", "DM"],
        "USUBJID": ["S1", "S2"],
        "AGE": [45, 17],
        "ARM": ["Placebo", np.nan],
    })
    ex = pd.DataFrame({
        "STUDYID": ["STUDY1", "STUDY1", "STUDY1"],
        "USUBJID": ["S1", "S1", "S1"],
        "EXSEQ": [1, 2, 3],
        "EXTRT": ["XANOMELINE", "PLACEBO", "PLACEBO"],
        "EXDOSE": [0, 0, 0],
        "EXSTDTC": ["2024-01-03", "2024-01-05T08", "2024-01-20"],
        "EXENDTC": ["2024-01-04", "2024-01-19", "2024-02-01"],
    })
    ae = pd.DataFrame({
        "STUDYID": ["STUDY1", "STUDY1"],
        "USUBJID": ["S1", "S1"],
        "AESEQ": [1, 2],
        "AESTDTC": ["2024-03-01", "2024-02"],
    })
    vs = pd.DataFrame({
        "STUDYID": ["STUDY1", "STUDY1"],
        "USUBJID": ["S1", "S2"],
        "VSSEQ": [1, 1],
        "VSSTRESN": [70.0, np.nan],
        "VSSTRESC": ["70", np.nan],
        "VSDTC": ["2024-02-10", "2024-01-20"],
    })
    ds = pd.DataFrame({
        "STUDYID": ["STUDY1", "STUDY1"],
        "USUBJID": ["S1", "S2"],
        "DSSEQ": [1, 1],
        "DSSTDTC": ["2024-04", "2024-01-25"],
    })
    return {"dm": dm, "ds": ds, "ex": ex, "ae": ae, "vs": vs}
