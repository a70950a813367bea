"""Tabular inputs/outputs for the derivation scripts."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Sequence

import numpy as np
import pandas as pd

from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)


class MissingColumnError(ValueError):
    """A source table lacks a column a derivation cannot run without."""

    def __init__(self, table: str, missing: Sequence[str]):
        self.table = table
        self.missing = list(missing)
        super().__init__(f"{table}: required column(s) missing: {', '.join(self.missing)}")


def require_columns(df: pd.DataFrame, columns: Iterable[str], table: str = "dataset") -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise MissingColumnError(table, missing)


def convert_blanks_to_na(df: pd.DataFrame) -> pd.DataFrame:
    """Empty or whitespace-only strings become missing values."""
    out = df.copy()
    for col in out.columns:
        if pd.api.types.is_object_dtype(out[col]) or pd.api.types.is_string_dtype(out[col]):
            out[col] = out[col].replace(r"^\s*$", np.nan, regex=True)
    return out


def read_table(path: str | Path, name: str | None = None) -> pd.DataFrame:
    """Read a CSV source table with all columns kept as raw values."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Input table not found: {file_path}")
    df = pd.read_csv(file_path, keep_default_na=True, low_memory=False)
    log.info("table_loaded", table=name or file_path.stem, rows=len(df), columns=len(df.columns))
    return df


def read_domains(directory: str | Path, names: Sequence[str]) -> Dict[str, pd.DataFrame]:
    """Load `<name>.csv` for each name; lower-case file names are tried first."""
    base = Path(directory)
    frames: Dict[str, pd.DataFrame] = {}
    for name in names:
        candidates = [base / f"{name.lower()}.csv", base / f"{name.upper()}.csv"]
        path = next((p for p in candidates if p.exists()), candidates[0])
        frames[name.lower()] = read_table(path, name=name.upper())
    return frames


def write_csv(df: pd.DataFrame, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)
    log.info("table_written", path=str(out), rows=len(df))
    return out


__all__ = [
    "MissingColumnError",
    "require_columns",
    "convert_blanks_to_na",
    "read_table",
    "read_domains",
    "write_csv",
]
