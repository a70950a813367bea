"""Ordered condition -> value rules ("first match wins") for categorical variables.

Rules are kept exactly as declared, including overlaps or gaps between their
boundaries: a later rule is never consulted for a row an earlier rule matched.
A condition is a callable taking either a single row or a whole DataFrame, e.g.
``lambda r: r["AGE"] < 18`` works for both.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Mapping, NamedTuple, Sequence, Union

import numpy as np
import pandas as pd

from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)

MISSING = np.nan


class LookupRule(NamedTuple):
    condition: Callable[[Any], Any]
    value: Any


Rules = Sequence[Union[LookupRule, tuple]]


def between(x, low, high):
    """Inclusive range test for scalars or Series; missing input is never in range."""
    return (x >= low) & (x <= high)


def is_missing(x):
    return x.isna() if isinstance(x, (pd.Series, pd.DataFrame)) else pd.isna(x)


def is_present(x):
    return x.notna() if isinstance(x, (pd.Series, pd.DataFrame)) else not pd.isna(x)


def _as_rules(rules: Rules) -> List[LookupRule]:
    parsed = [r if isinstance(r, LookupRule) else LookupRule(*r) for r in rules]
    if not parsed:
        raise ValueError("A lookup needs at least one rule")
    return parsed


def _truthy(result) -> bool:
    if result is None or result is pd.NA:
        return False
    try:
        if pd.isna(result):
            return False
    except (TypeError, ValueError):
        pass
    return bool(result)


def apply_lookup(row: Mapping[str, Any], rules: Rules) -> Any:
    """Value of the first rule whose condition holds for `row`; missing if none does."""
    for rule in _as_rules(rules):
        if _truthy(rule.condition(row)):
            return rule.value
    return MISSING


def derive_vars_cat(df: pd.DataFrame, rules: Rules, target: str) -> pd.DataFrame:
    """Add `target` by evaluating `rules` top-down over every row of `df`."""
    parsed = _as_rules(rules)
    out = df.copy()
    values = pd.Series(MISSING, index=df.index, dtype=object)
    unassigned = pd.Series(True, index=df.index)
    for rule in parsed:
        hit = rule.condition(df)
        if not isinstance(hit, pd.Series):
            hit = pd.Series(hit, index=df.index)
        hit = hit.fillna(False).astype(bool) & unassigned
        values[hit] = rule.value
        unassigned &= ~hit
    out[target] = values.infer_objects()
    log.info("derived_categorical_variable", variable=target, rows=len(out), unmatched=int(unassigned.sum()))
    return out


def lookup_table(rows: Iterable[tuple], targets: Sequence[str]) -> dict:
    """Split a wide definition ``(condition, value_1, value_2, ...)`` into one rule list per target."""
    definitions = {name: [] for name in targets}
    for entry in rows:
        condition, *values = entry
        if len(values) != len(targets):
            raise ValueError(f"Lookup row has {len(values)} values for {len(targets)} targets")
        for name, value in zip(targets, values):
            definitions[name].append(LookupRule(condition, value))
    return definitions


__all__ = [
    "LookupRule",
    "MISSING",
    "between",
    "is_missing",
    "is_present",
    "apply_lookup",
    "derive_vars_cat",
    "lookup_table",
]
