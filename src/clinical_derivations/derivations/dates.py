"""ISO 8601 date/time handling for SDTM --DTC and ADaM --DT/--DTM variables.

Raw CRF dates arrive in study-specific layouts ("m-d-y", "H:M", "dd-mmm-yyyy")
and may carry unknown components ("UN", "UNK"). They are assembled into SDTM DTC
strings, which keep partial precision: "2019-03", "2019---15", "2019-03-15T10".
Conversion to comparable ADaM values applies an explicit imputation policy; a
partial date the policy does not allow to be completed converts to missing.
"""
from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from clinical_derivations.io import require_columns
from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)

UNKNOWN_TOKENS = {"", "UN", "UNK", "UNKN", "UK", "NK", "--"}
MONTH_ABBREVIATIONS = {name.upper(): idx for idx, name in enumerate(calendar.month_abbr) if name}

# Imputation levels from least to most aggressive
IMPUTATION_LEVELS = ("n", "s", "m", "h", "D", "M", "Y")
DATE_IMPUTATIONS = ("first", "mid", "last")
TIME_IMPUTATIONS = ("first", "last")

_COMPONENTS = ("year", "month", "day", "hour", "minute", "second")
_FORMAT_TOKEN = re.compile(r"y+|m+|d+|H+|M+|S+")
_VALUE_SEPARATORS = re.compile(r"[-/:.\s]+")
_TOKEN_COMPONENT = {"y": "year", "m": "month", "d": "day", "H": "hour", "M": "minute", "S": "second"}
_TOKEN_RANGE = {"month": (1, 12), "day": (1, 31), "hour": (0, 23), "minute": (0, 59), "second": (0, 59)}

_DTC_PATTERN = re.compile(
    r"^(?P<year>\d{4}|-)"
    r"(?:-(?P<month>\d{2}|-)(?:-(?P<day>\d{2}|-))?)?"
    r"(?:T(?P<hour>\d{2}|-)(?::(?P<minute>\d{2}|-)(?::(?P<second>\d{2}(?:\.\d+)?|-))?)?)?$"
)


@dataclass(frozen=True)
class DateParts:
    year: Optional[int] = None
    month: Optional[int] = None
    day: Optional[int] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    second: Optional[int] = None

    def merge(self, other: "DateParts") -> "DateParts":
        return DateParts(**{
            name: getattr(self, name) if getattr(self, name) is not None else getattr(other, name)
            for name in _COMPONENTS
        })

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in _COMPONENTS)


def _check_level(level: str) -> int:
    if level not in IMPUTATION_LEVELS:
        raise ValueError(f"Unknown imputation level {level!r}; expected one of {IMPUTATION_LEVELS}")
    if level == "Y":
        raise ValueError("Year imputation requires reference dates and is not supported")
    return IMPUTATION_LEVELS.index(level)


def _format_tokens(raw_fmt: str) -> Tuple[str, ...]:
    tokens = tuple(tok[0] for tok in _FORMAT_TOKEN.findall(raw_fmt))
    if not tokens:
        raise ValueError(f"Raw date format {raw_fmt!r} has no y/m/d/H/M/S components")
    return tokens


def parse_raw_value(value, raw_fmt: str) -> Optional[DateParts]:
    """Split one raw CRF value by its format; None when it does not fit."""
    tokens = _format_tokens(raw_fmt)
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return DateParts()
    text = str(value).strip()
    if not text:
        return DateParts()
    pieces = _VALUE_SEPARATORS.split(text)
    if len(pieces) != len(tokens):
        return None

    parts: Dict[str, Optional[int]] = {}
    for token, piece in zip(tokens, pieces):
        component = _TOKEN_COMPONENT[token]
        piece = piece.upper()
        if piece in UNKNOWN_TOKENS:
            parts[component] = None
            continue
        if component == "month" and piece in MONTH_ABBREVIATIONS:
            parts[component] = MONTH_ABBREVIATIONS[piece]
            continue
        if not piece.isdigit():
            return None
        number = int(piece)
        if component == "year":
            if len(piece) == 2:
                number += 2000 if number < 50 else 1900
            elif len(piece) != 4:
                return None
        else:
            low, high = _TOKEN_RANGE[component]
            if not low <= number <= high:
                return None
        parts[component] = number
    return DateParts(**parts)


def format_dtc(parts: DateParts) -> Optional[str]:
    """Render SDTM ISO 8601, truncated after the last known component."""
    values = [getattr(parts, name) for name in _COMPONENTS]
    known = [i for i, v in enumerate(values) if v is not None]
    if not known:
        return None
    last = known[-1]

    def render(idx: int, width: int) -> str:
        value = values[idx]
        return "-" if value is None else f"{value:0{width}d}"

    date_text = render(0, 4)
    for idx in (1, 2):
        if idx > last:
            break
        date_text += "-" + render(idx, 2)
    if last < 3:
        return date_text

    # with a time part the date is written out in full
    date_text = "-".join([render(0, 4), render(1, 2), render(2, 2)])
    time_text = render(3, 2)
    for idx in (4, 5):
        if idx > last:
            break
        time_text += ":" + render(idx, 2)
    return f"{date_text}T{time_text}"


def assemble_dtc(df: pd.DataFrame, raw_vars: Sequence[str], raw_fmts: Sequence[str]) -> pd.Series:
    """Build --DTC strings from one or more raw columns, each with its own format.

    Typical pairs are a time column ("H:M") and a date column ("m-d-y"). Values
    that do not fit their format contribute nothing; a row with no usable
    component yields a missing DTC.
    """
    if len(raw_vars) != len(raw_fmts):
        raise ValueError("raw_vars and raw_fmts must have the same length")
    require_columns(df, raw_vars, table="raw dataset")

    results = []
    unparsed = 0
    for _, row in df[list(raw_vars)].iterrows():
        combined = DateParts()
        for var, fmt in zip(raw_vars, raw_fmts):
            parts = parse_raw_value(row[var], fmt)
            if parts is None:
                unparsed += 1
                continue
            combined = combined.merge(parts)
        results.append(format_dtc(combined))

    if unparsed:
        log.warning("raw_dates_unparsed", raw_vars=list(raw_vars), formats=list(raw_fmts), count=unparsed)
    return pd.Series(results, index=df.index, dtype=object)


def parse_dtc(dtc) -> DateParts:
    """Components of an SDTM DTC string; non-ISO input gives empty parts."""
    if dtc is None or (isinstance(dtc, float) and np.isnan(dtc)) or dtc is pd.NA or dtc is pd.NaT:
        return DateParts()
    if isinstance(dtc, datetime):
        return DateParts(dtc.year, dtc.month, dtc.day, dtc.hour, dtc.minute, dtc.second)
    match = _DTC_PATTERN.match(str(dtc).strip())
    if not match:
        return DateParts()
    parts = {}
    for name in _COMPONENTS:
        text = match.group(name)
        parts[name] = None if text in (None, "-") else int(float(text))
    return DateParts(**parts)


def _impute_date(parts: DateParts, level: int, date_imputation: str) -> Optional[Tuple[int, int, int, Optional[str]]]:
    if parts.year is None:
        return None
    month, day, flag = parts.month, parts.day, None
    if month is None:
        if level < IMPUTATION_LEVELS.index("M"):
            return None
        month = {"first": 1, "mid": 6, "last": 12}[date_imputation]
        flag = "M"
    if day is None:
        if level < IMPUTATION_LEVELS.index("D"):
            return None
        if date_imputation == "first":
            day = 1
        elif date_imputation == "mid":
            day = 30 if flag == "M" else 15
        else:
            day = calendar.monthrange(parts.year, month)[1]
        flag = flag or "D"
    return parts.year, month, day, flag


def impute_dt(parts: DateParts, highest_imputation: str = "n", date_imputation: str = "first") -> Tuple[Optional[datetime], Optional[str]]:
    """Resolve a date under the policy; returns (date or None, date imputation flag)."""
    level = _check_level(highest_imputation)
    if date_imputation not in DATE_IMPUTATIONS:
        raise ValueError(f"date_imputation must be one of {DATE_IMPUTATIONS}")
    resolved = _impute_date(parts, level, date_imputation)
    if resolved is None:
        return None, None
    year, month, day, flag = resolved
    try:
        return datetime(year, month, day), flag
    except ValueError:
        return None, None


def impute_dtm(
    parts: DateParts,
    highest_imputation: str = "h",
    date_imputation: str = "first",
    time_imputation: str = "first",
    ignore_seconds_flag: bool = False,
) -> Tuple[Optional[datetime], Optional[str], Optional[str]]:
    """Resolve a datetime; returns (datetime or None, date flag, time flag)."""
    level = _check_level(highest_imputation)
    if date_imputation not in DATE_IMPUTATIONS:
        raise ValueError(f"date_imputation must be one of {DATE_IMPUTATIONS}")
    if time_imputation not in TIME_IMPUTATIONS:
        raise ValueError(f"time_imputation must be one of {TIME_IMPUTATIONS}")

    resolved = _impute_date(parts, level, date_imputation)
    if resolved is None:
        return None, None, None
    year, month, day, dtf = resolved

    fill = {"first": (0, 0, 0), "last": (23, 59, 59)}[time_imputation]
    clock = []
    tmf = None
    for name, minimum_level, flag, default in zip(
        ("hour", "minute", "second"), ("h", "m", "s"), ("H", "M", "S"), fill
    ):
        value = getattr(parts, name)
        # A missing higher component makes the lower ones meaningless
        if value is None or tmf is not None:
            if level < IMPUTATION_LEVELS.index(minimum_level):
                return None, None, None
            value = default
            if tmf is None and not (flag == "S" and ignore_seconds_flag):
                tmf = flag
        clock.append(value)
    try:
        return datetime(year, month, day, *clock), dtf, tmf
    except ValueError:
        return None, None, None


def convert_dtc_to_dt(dtcs: pd.Series, highest_imputation: str = "n", date_imputation: str = "first") -> pd.Series:
    """DTC strings to dates (datetime64 at midnight); unresolvable values are NaT."""
    values = [impute_dt(parse_dtc(v), highest_imputation, date_imputation)[0] for v in dtcs]
    result = pd.Series(pd.to_datetime(values), index=dtcs.index)
    dropped = int((dtcs.notna() & result.isna()).sum())
    if dropped:
        log.info("partial_dates_unresolved", variable=dtcs.name, count=dropped, highest_imputation=highest_imputation)
    return result


def convert_dtc_to_dtm(
    dtcs: pd.Series,
    highest_imputation: str = "h",
    date_imputation: str = "first",
    time_imputation: str = "first",
    ignore_seconds_flag: bool = False,
) -> Tuple[pd.Series, pd.Series, pd.Series]:
    """DTC strings to (datetime, date imputation flag, time imputation flag)."""
    resolved = [
        impute_dtm(parse_dtc(v), highest_imputation, date_imputation, time_imputation, ignore_seconds_flag)
        for v in dtcs
    ]
    dtm = pd.Series(pd.to_datetime([r[0] for r in resolved]), index=dtcs.index)
    dtf = pd.Series([r[1] for r in resolved], index=dtcs.index, dtype=object)
    tmf = pd.Series([r[2] for r in resolved], index=dtcs.index, dtype=object)
    dropped = int((dtcs.notna() & dtm.isna()).sum())
    if dropped:
        log.info("partial_datetimes_unresolved", variable=dtcs.name, count=dropped, highest_imputation=highest_imputation)
    return dtm, dtf, tmf


def derive_vars_dtm(
    df: pd.DataFrame,
    dtc: str,
    new_vars_prefix: str,
    highest_imputation: str = "h",
    date_imputation: str = "first",
    time_imputation: str = "first",
    ignore_seconds_flag: bool = False,
) -> pd.DataFrame:
    """Add `<prefix>DTM` and `<prefix>TMF`; `<prefix>DTF` when dates may be imputed."""
    require_columns(df, [dtc], table="source dataset")
    out = df.copy()
    dtm, dtf, tmf = convert_dtc_to_dtm(
        out[dtc],
        highest_imputation=highest_imputation,
        date_imputation=date_imputation,
        time_imputation=time_imputation,
        ignore_seconds_flag=ignore_seconds_flag,
    )
    out[f"{new_vars_prefix}DTM"] = dtm
    if IMPUTATION_LEVELS.index(highest_imputation) >= IMPUTATION_LEVELS.index("D"):
        out[f"{new_vars_prefix}DTF"] = dtf
    out[f"{new_vars_prefix}TMF"] = tmf
    return out


def derive_vars_dt(
    df: pd.DataFrame,
    dtc: str,
    new_vars_prefix: str,
    highest_imputation: str = "n",
    date_imputation: str = "first",
) -> pd.DataFrame:
    """Add `<prefix>DT` (and `<prefix>DTF` when dates may be imputed)."""
    require_columns(df, [dtc], table="source dataset")
    out = df.copy()
    level = _check_level(highest_imputation)
    resolved = [impute_dt(parse_dtc(v), highest_imputation, date_imputation) for v in out[dtc]]
    out[f"{new_vars_prefix}DT"] = pd.to_datetime([r[0] for r in resolved])
    if level >= IMPUTATION_LEVELS.index("D"):
        out[f"{new_vars_prefix}DTF"] = pd.Series([r[1] for r in resolved], index=out.index, dtype=object)
    return out


__all__ = [
    "DateParts",
    "assemble_dtc",
    "parse_raw_value",
    "format_dtc",
    "parse_dtc",
    "impute_dt",
    "impute_dtm",
    "convert_dtc_to_dt",
    "convert_dtc_to_dtm",
    "derive_vars_dtm",
    "derive_vars_dt",
]
