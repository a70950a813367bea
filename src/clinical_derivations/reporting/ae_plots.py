"""Adverse event figures: severity by arm and most frequent preferred terms."""
from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
from matplotlib.ticker import PercentFormatter  # noqa: E402
from scipy.stats import binomtest  # noqa: E402

from clinical_derivations.io import require_columns  # noqa: E402
from clinical_derivations.logging_utils import get_logger  # noqa: E402

log = get_logger(__name__)


def _write_figure(path: Path, fig, dpi: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    log.info("figure_written", path=str(path))
    return path


def severity_counts(adae: pd.DataFrame, by: str = "ACTARM", severity: str = "AESEV") -> pd.DataFrame:
    """Event counts per arm and severity; every record counts."""
    require_columns(adae, [by, severity], table="adae")
    return adae.groupby([by, severity], dropna=False).size().reset_index(name="n")


def plot_severity_by_arm(
    counts: pd.DataFrame,
    destination: str | Path,
    by: str = "ACTARM",
    severity: str = "AESEV",
    width: float = 8.0,
    height: float = 6.0,
    dpi: int = 300,
) -> Path:
    labelled = counts.assign(**{severity: counts[severity].fillna("Missing")})
    table = labelled.pivot_table(index=by, columns=severity, values="n", aggfunc="sum", fill_value=0)
    table = table[sorted(table.columns, key=str)]

    fig, ax = plt.subplots(figsize=(width, height))
    bottom = pd.Series(0, index=table.index)
    for level in table.columns:
        ax.bar(table.index.astype(str), table[level], bottom=bottom, label=str(level))
        bottom = bottom + table[level]
    ax.set_title("AE severity distribution by treatment")
    ax.set_xlabel("Treatment Arm")
    ax.set_ylabel("Count of AE")
    ax.legend(title=severity, loc="center left", bbox_to_anchor=(1.0, 0.5))
    return _write_figure(Path(destination), fig, dpi)


def clopper_pearson(successes: int, trials: int, confidence: float = 0.95) -> tuple[float, float]:
    """Exact binomial confidence interval for successes / trials."""
    ci = binomtest(int(successes), int(trials)).proportion_ci(confidence_level=confidence, method="exact")
    return float(ci.low), float(ci.high)


def top_ae_frequencies(adae: pd.DataFrame, n: int = 10, term: str = "AEDECOD", id_var: str = "USUBJID") -> pd.DataFrame:
    """Share of subjects reporting each term, top `n` by share (ties at the cut kept).

    The denominator is the number of distinct subjects in `adae`.
    """
    require_columns(adae, [id_var, term], table="adae")
    total = adae[id_var].nunique()
    per_term = (
        adae[[id_var, term]]
        .drop_duplicates()
        .dropna(subset=[term])
        .groupby(term)[id_var]
        .nunique()
        .rename("n")
        .reset_index()
    )
    per_term["N"] = total
    per_term["pct"] = per_term["n"] / total
    bounds = [clopper_pearson(k, total) for k in per_term["n"]]
    per_term["low"] = [b[0] for b in bounds]
    per_term["high"] = [b[1] for b in bounds]
    top = per_term.nlargest(n, "pct", keep="all")
    return top.sort_values(["pct", term], ascending=[False, True]).reset_index(drop=True)


def plot_top_aes(
    frequencies: pd.DataFrame,
    destination: str | Path,
    term: str = "AEDECOD",
    title: str = "Top 10 Most Frequent Adverse Events",
    width: float = 8.0,
    height: float = 6.0,
    dpi: int = 300,
) -> Path:
    total = int(frequencies["N"].iloc[0]) if len(frequencies) else 0
    # most frequent term drawn at the top
    ordered = frequencies.iloc[::-1]
    positions = range(len(ordered))

    fig, ax = plt.subplots(figsize=(width, height))
    ax.errorbar(
        ordered["pct"],
        list(positions),
        xerr=[ordered["pct"] - ordered["low"], ordered["high"] - ordered["pct"]],
        fmt="o",
        markersize=6,
        capsize=4,
        color="black",
    )
    ax.set_yticks(list(positions))
    ax.set_yticklabels(ordered[term].astype(str))
    ax.xaxis.set_major_formatter(PercentFormatter(xmax=1.0))
    ax.set_xlabel("Percentage of Patients (%)")
    fig.suptitle(title, x=0.125, ha="left", fontsize=13)
    ax.set_title(f"n = {total} subjects; 95% Clopper-Pearson CIs", loc="left", fontsize=10)
    return _write_figure(Path(destination), fig, dpi)


__all__ = [
    "severity_counts",
    "plot_severity_by_arm",
    "clopper_pearson",
    "top_ae_frequencies",
    "plot_top_aes",
]
