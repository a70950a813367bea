"""Treatment-emergent AE summary table by system organ class and treatment arm."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

import pandas as pd
from markdown import markdown

from clinical_derivations.io import require_columns
from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)

ANY_TEAE_LABEL = "Treatment Emergent AEs"
OVERALL_COLUMN = "Overall"
LABEL_HEADER = "**Primary System Organ Class <br> Reported Term for the Adverse Events**"


@dataclass(frozen=True)
class AESummary:
    """Subject counts per row label and arm, with the matching denominators."""

    counts: pd.DataFrame
    denominators: pd.Series

    def percentages(self) -> pd.DataFrame:
        return self.counts.div(self.denominators, axis=1) * 100

    def formatted(self) -> pd.DataFrame:
        pct = self.percentages()
        cells = {
            column: [_format_cell(n, p) for n, p in zip(self.counts[column], pct[column])]
            for column in self.counts.columns
        }
        return pd.DataFrame(cells, index=self.counts.index)


def _format_cell(n: int, pct: float) -> str:
    if pd.isna(pct):
        return f"{n} (NA)"
    if 0 < pct < 1:
        return f"{n} (<1%)"
    return f"{n} ({pct:.0f}%)"


def teae(adae: pd.DataFrame) -> pd.DataFrame:
    """Treatment-emergent records (TRTEMFL == "Y")."""
    require_columns(adae, ["TRTEMFL"], table="adae")
    return adae[adae["TRTEMFL"] == "Y"]


def build_ae_summary(
    adae: pd.DataFrame,
    adsl: pd.DataFrame,
    by: str = "ACTARM",
    soc: str = "AESOC",
    id_var: str = "USUBJID",
    overall: bool = True,
) -> AESummary:
    """Subject-based TEAE counts: each subject counts once per row and arm.

    Denominators are the ADSL subjects of each arm. The first row counts subjects
    with any TEAE; SOC rows follow by descending overall frequency, ties by name.
    """
    require_columns(adae, [id_var, by, soc, "TRTEMFL"], table="adae")
    require_columns(adsl, [id_var, by], table="adsl")

    denominators = adsl.groupby(by)[id_var].nunique()
    arms: List[str] = list(denominators.index)

    events = teae(adae)
    outside = ~events[id_var].isin(adsl[id_var])
    if outside.any():
        log.warning("teae_subjects_not_in_adsl", records=int(outside.sum()))
        events = events[~outside]

    any_row = events.groupby(by)[id_var].nunique().reindex(arms, fill_value=0)
    if events.empty:
        by_soc = pd.DataFrame(columns=arms, dtype=int)
    else:
        by_soc = (
            events.groupby([soc, by])[id_var].nunique().unstack(by, fill_value=0).reindex(columns=arms, fill_value=0)
        )
    counts = pd.concat([any_row.to_frame(ANY_TEAE_LABEL).T, by_soc])
    counts.columns.name = None

    if overall:
        counts[OVERALL_COLUMN] = [events[id_var].nunique()] + [
            events.loc[events[soc] == name, id_var].nunique() for name in by_soc.index
        ]
        denominators = pd.concat([denominators, pd.Series({OVERALL_COLUMN: adsl[id_var].nunique()})])

    ranking = counts.loc[by_soc.index].sum(axis=1) if not overall else counts.loc[by_soc.index, OVERALL_COLUMN]
    soc_order = sorted(by_soc.index, key=lambda name: (-ranking[name], str(name)))
    counts = counts.loc[[ANY_TEAE_LABEL] + soc_order].astype(int)

    log.info("ae_summary_built", socs=len(soc_order), arms=len(arms), teae_records=len(events))
    return AESummary(counts=counts, denominators=denominators)


def to_markdown(summary: AESummary) -> str:
    table = summary.formatted()
    header = [LABEL_HEADER] + [
        f"**{column}** <br> N = {int(summary.denominators[column])}" for column in table.columns
    ]
    lines = [
        "| " + " | ".join(header) + " |",
        "| " + " | ".join(["---"] * len(header)) + " |",
    ]
    for label, row in table.iterrows():
        name = f"**{label}**" if label == ANY_TEAE_LABEL else f"&nbsp;&nbsp;&nbsp;&nbsp;{label}"
        lines.append("| " + " | ".join([name] + list(row)) + " |")
    return "\n".join(lines) + "\n"


def write_ae_summary_html(summary: AESummary, destination: str | Path, title: str = "TEAE Summary") -> Path:
    html_body = markdown(f"# {title}\n\n" + to_markdown(summary), extensions=["tables"])
    wrapped = f"""<!doctype html>
<html lang=\"en\">
<head>
  <meta charset=\"utf-8\">
  <title>{title}</title>
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 1100px; margin: 2rem auto; line-height: 1.5; }}
    table {{ border-collapse: collapse; width: 100%; margin-bottom: 1.5rem; }}
    th, td {{ border-bottom: 1px solid #ccc; padding: 0.4rem 0.75rem; text-align: left; }}
    td + td, th + th {{ text-align: center; }}
    h1 {{ color: #123A5F; font-size: 1.4rem; }}
  </style>
</head>
<body>
{html_body}
</body>
</html>
"""
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(wrapped, encoding="utf-8")
    log.info("ae_summary_written", path=str(path))
    return path


__all__ = [
    "AESummary",
    "ANY_TEAE_LABEL",
    "OVERALL_COLUMN",
    "teae",
    "build_ae_summary",
    "to_markdown",
    "write_ae_summary_html",
]
