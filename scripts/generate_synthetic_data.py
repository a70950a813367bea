"""Synthetic raw, SDTM and ADaM inputs for running the derivation scripts end to end."""
from __future__ import annotations

import argparse
from datetime import date, datetime, timedelta
from pathlib import Path
from random import Random

import pandas as pd

STUDYID = "CDISCPILOT01"
ARMS = ["Placebo", "Xanomeline Low Dose", "Xanomeline High Dose"]
DOSES = {"Placebo": 0, "Xanomeline Low Dose": 54, "Xanomeline High Dose": 81}
VISITS = [("Screening 1", "SCREENING 1", "1"), ("Baseline", "BASELINE", "3"), ("Week 12", "WEEK 12", "9"), ("Week 26", "WEEK 26", "13")]
DISPOSITIONS = [
    ("COMPLETED", "Completed"),
    ("ADVERSE EVENT", "Adverse Event"),
    ("WITHDRAWAL BY SUBJECT", "Withdrawal by Subject"),
    ("PHYSICIAN DECISION", "Physician Decision"),
    ("LOST TO FOLLOW-UP", "Lost to Follow-up"),
    ("RANDOMIZED", "Randomized"),
]
AE_TERMS = [
    ("APPLICATION SITE PRURITUS", "GENERAL DISORDERS AND ADMINISTRATION SITE CONDITIONS"),
    ("APPLICATION SITE ERYTHEMA", "GENERAL DISORDERS AND ADMINISTRATION SITE CONDITIONS"),
    ("PRURITUS", "SKIN AND SUBCUTANEOUS TISSUE DISORDERS"),
    ("ERYTHEMA", "SKIN AND SUBCUTANEOUS TISSUE DISORDERS"),
    ("DIZZINESS", "NERVOUS SYSTEM DISORDERS"),
    ("HEADACHE", "NERVOUS SYSTEM DISORDERS"),
    ("DIARRHOEA", "GASTROINTESTINAL DISORDERS"),
    ("NAUSEA", "GASTROINTESTINAL DISORDERS"),
    ("SINUS BRADYCARDIA", "CARDIAC DISORDERS"),
    ("NASOPHARYNGITIS", "INFECTIONS AND INFESTATIONS"),
    ("COUGH", "RESPIRATORY, THORACIC AND MEDIASTINAL DISORDERS"),
]


def gen_ct() -> pd.DataFrame:
    rows = []
    for i, (term, collected) in enumerate(DISPOSITIONS):
        rows.append({
            "codelist_code": "C66727", "term_code": f"C{41331 + i}", "term_value": term,
            "collected_value": collected, "term_preferred_term": term.title(), "term_synonyms": None,
        })
    for i, term in enumerate(["PROTOCOL MILESTONE", "DISPOSITION EVENT", "OTHER EVENT"]):
        rows.append({
            "codelist_code": "C74558", "term_code": f"C{74590 + i}", "term_value": term,
            "collected_value": term.title(), "term_preferred_term": term.title(), "term_synonyms": None,
        })
    for collected, visit, visitnum in VISITS:
        rows.append({
            "codelist_code": "VISIT", "term_code": None, "term_value": visit,
            "collected_value": collected, "term_preferred_term": None, "term_synonyms": None,
        })
        rows.append({
            "codelist_code": "VISITNUM", "term_code": None, "term_value": visitnum,
            "collected_value": collected, "term_preferred_term": None, "term_synonyms": None,
        })
    return pd.DataFrame(rows)


def _mdy(d: date) -> str:
    return d.strftime("%m-%d-%Y")


def gen_dm(rng: Random, n: int) -> pd.DataFrame:
    rows = []
    for i in range(n):
        arm = rng.choice(ARMS + [None])
        age = rng.choice([rng.randint(16, 85), rng.randint(51, 85), None])
        rows.append({
            "STUDYID": STUDYID,
            "DOMAIN": "DM",
            "USUBJID": f"01-{701 + i % 5}-{1001 + i:04d}",
            "SUBJID": f"{1001 + i:04d}",
            "AGE": age,
            "SEX": rng.choice(["M", "F"]),
            "ARM": arm,
            "ACTARM": arm if arm is not None else "Screen Failure",
            "RFSTDTC": None,
        })
    return pd.DataFrame(rows)


def gen_ex(rng: Random, dm: pd.DataFrame) -> pd.DataFrame:
    rows = []
    base = datetime(2024, 1, 2, 8, 0)
    for _, r in dm.iterrows():
        if r["ARM"] is None:
            continue
        start = base + timedelta(days=rng.randint(0, 30), hours=rng.randint(0, 8))
        for seq in range(1, rng.randint(1, 3) + 1):
            end = start + timedelta(days=rng.randint(14, 60))
            # some start times are collected to the hour, some not at all
            start_text = rng.choice([start.strftime("%Y-%m-%dT%H:%M"), start.strftime("%Y-%m-%dT%H"), start.date().isoformat()])
            rows.append({
                "STUDYID": STUDYID,
                "DOMAIN": "EX",
                "USUBJID": r["USUBJID"],
                "EXSEQ": seq,
                "EXTRT": "PLACEBO" if r["ARM"] == "Placebo" else "XANOMELINE",
                "EXDOSE": DOSES[r["ARM"]],
                "EXSTDTC": start_text,
                "EXENDTC": end.date().isoformat(),
            })
            start = end + timedelta(days=1)
    return pd.DataFrame(rows)


def gen_ae(rng: Random, dm: pd.DataFrame) -> pd.DataFrame:
    rows = []
    base = date(2024, 1, 10)
    for _, r in dm.iterrows():
        for seq in range(1, rng.randint(0, 4) + 1):
            term, soc = rng.choice(AE_TERMS)
            start = base + timedelta(days=rng.randint(0, 90))
            rows.append({
                "STUDYID": STUDYID,
                "DOMAIN": "AE",
                "USUBJID": r["USUBJID"],
                "AESEQ": seq,
                "AETERM": term.lower(),
                "AEDECOD": term,
                "AESOC": soc,
                "AESEV": rng.choice(["MILD", "MODERATE", "SEVERE", None]),
                # partial onset dates do not count towards the last alive date
                "AESTDTC": rng.choice([start.isoformat(), start.isoformat(), start.strftime("%Y-%m")]),
            })
    return pd.DataFrame(rows)


def gen_vs(rng: Random, dm: pd.DataFrame) -> pd.DataFrame:
    rows = []
    base = date(2024, 1, 1)
    for _, r in dm.iterrows():
        seq = 0
        for visit_day in (0, 14, 84, 182):
            seq += 1
            value = rng.choice([round(rng.uniform(50, 110)), None])
            rows.append({
                "STUDYID": STUDYID,
                "DOMAIN": "VS",
                "USUBJID": r["USUBJID"],
                "VSSEQ": seq,
                "VSTESTCD": "PULSE",
                "VSSTRESN": value,
                "VSSTRESC": None if value is None else str(value),
                "VSDTC": (base + timedelta(days=visit_day + rng.randint(0, 3))).isoformat(),
            })
    return pd.DataFrame(rows)


def gen_ds(rng: Random, dm: pd.DataFrame) -> pd.DataFrame:
    rows = []
    base = date(2024, 1, 1)
    for _, r in dm.iterrows():
        decod = rng.choice([d[0] for d in DISPOSITIONS[:-1]])
        rows.append({
            "STUDYID": STUDYID,
            "DOMAIN": "DS",
            "USUBJID": r["USUBJID"],
            "DSSEQ": 1,
            "DSDECOD": decod,
            "DSSTDTC": (base + timedelta(days=rng.randint(100, 200))).isoformat(),
        })
    return pd.DataFrame(rows)


def gen_ds_raw(rng: Random, dm: pd.DataFrame) -> pd.DataFrame:
    rows = []
    base = date(2024, 1, 1)
    for _, r in dm.iterrows():
        patnum = r["USUBJID"]
        randomized = base + timedelta(days=rng.randint(0, 14))
        rows.append({
            "STUDY": STUDYID, "PATNUM": patnum, "INSTANCE": "Baseline",
            "IT.DSTERM": "Randomized", "IT.DSDECOD": "Randomized", "OTHERSP": None,
            "IT.DSSTDAT": _mdy(randomized), "DSDTCOL": _mdy(randomized), "DSTMCOL": "09:30",
        })
        end = randomized + timedelta(days=rng.randint(60, 180))
        collected, reported = rng.choice(DISPOSITIONS[:-1])[1], None
        if rng.random() < 0.15:
            collected, reported = None, "Final Retrieval Visit"
        rows.append({
            "STUDY": STUDYID, "PATNUM": patnum, "INSTANCE": rng.choice(["Week 12", "Week 26"]),
            "IT.DSTERM": collected or "Other", "IT.DSDECOD": collected, "OTHERSP": reported,
            # an unknown day is kept as a partial date
            "IT.DSSTDAT": rng.choice([_mdy(end), _mdy(end), end.strftime("%m-UN-%Y")]),
            "DSDTCOL": _mdy(end), "DSTMCOL": rng.choice(["14:05", None]),
        })
    return pd.DataFrame(rows)


def gen_adsl(dm: pd.DataFrame) -> pd.DataFrame:
    return dm[["STUDYID", "USUBJID", "ARM", "ACTARM", "AGE", "SEX"]].copy()


def gen_adae(rng: Random, ae: pd.DataFrame, dm: pd.DataFrame) -> pd.DataFrame:
    adae = ae.merge(dm[["USUBJID", "ACTARM"]], on="USUBJID", how="left")
    adae["TRTEMFL"] = [rng.choice(["Y", "Y", "Y", None]) for _ in range(len(adae))]
    return adae[["STUDYID", "USUBJID", "ACTARM", "AESEQ", "AETERM", "AEDECOD", "AESOC", "AESEV", "AESTDTC", "TRTEMFL"]]


def main(out: str, rows: int, seed: int) -> None:
    out_dir = Path(out)
    raw_dir, sdtm_dir, adam_dir = out_dir / "raw", out_dir / "sdtm", out_dir / "adam"
    for d in (raw_dir, sdtm_dir, adam_dir):
        d.mkdir(parents=True, exist_ok=True)
    rng = Random(seed)
    dm = gen_dm(rng, rows)
    ex = gen_ex(rng, dm)
    ae = gen_ae(rng, dm)
    vs = gen_vs(rng, dm)
    ds = gen_ds(rng, dm)

    gen_ct().to_csv(raw_dir / "sdtm_ct.csv", index=False)
    gen_ds_raw(rng, dm).to_csv(raw_dir / "ds_raw.csv", index=False)
    dm.to_csv(sdtm_dir / "dm.csv", index=False)
    ex.to_csv(sdtm_dir / "ex.csv", index=False)
    ae.to_csv(sdtm_dir / "ae.csv", index=False)
    vs.to_csv(sdtm_dir / "vs.csv", index=False)
    ds.to_csv(sdtm_dir / "ds.csv", index=False)
    gen_adsl(dm).to_csv(adam_dir / "adsl.csv", index=False)
    gen_adae(rng, ae, dm).to_csv(adam_dir / "adae.csv", index=False)


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--out", type=str, default="data")
    p.add_argument("--rows", type=int, default=60)
    p.add_argument("--seed", type=int, default=42)
    args = p.parse_args()
    main(args.out, args.rows, args.seed)
