"""First/last qualifying record per subject and merge of its fields."""
from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional, Sequence, Union

import pandas as pd

from clinical_derivations.io import require_columns
from clinical_derivations.logging_utils import get_logger

log = get_logger(__name__)

Condition = Union[Callable[[pd.DataFrame], object], pd.Series, bool, None]

MODES = ("first", "last")


def evaluate_condition(condition: Condition, df: pd.DataFrame) -> pd.Series:
    """Boolean mask for `condition` over `df`; missing comparison results count as False."""
    if condition is None:
        return pd.Series(True, index=df.index)
    result = condition(df) if callable(condition) else condition
    if isinstance(result, pd.Series):
        mask = result.reindex(df.index)
    else:
        mask = pd.Series(result, index=df.index)
    return mask.fillna(False).astype(bool)


def select_extreme(
    records: pd.DataFrame,
    by_vars: Sequence[str],
    order: Sequence[str],
    mode: str = "first",
    condition: Condition = None,
    table: str = "dataset",
) -> pd.DataFrame:
    """Winning row per `by_vars` group among rows satisfying `condition`.

    Candidates need a non-missing first order key; the remaining keys only break
    ties. Rows are sorted ascending by `order` (missing tie-breakers sort last)
    with a stable sort, so rows equal on every key keep their input order and
    `mode="first"` takes the earliest of them, `mode="last"` the latest. Groups
    without a candidate are absent from the result.
    """
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    if not order:
        raise ValueError("order needs at least one key")
    by_vars, order = list(by_vars), list(order)
    require_columns(records, by_vars + order, table=table)

    mask = evaluate_condition(condition, records)
    mask &= records[order[0]].notna()
    mask &= records[by_vars].notna().all(axis=1)
    candidates = records[mask]

    # multi-key sort_values is a stable lexsort
    ordered = candidates.sort_values(by_vars + order, kind="mergesort", na_position="last")
    winners = ordered.drop_duplicates(subset=by_vars, keep=mode)
    return winners.reset_index(drop=True)


def winners_by_key(winners: pd.DataFrame, by_vars: Sequence[str], fields: Sequence[str]) -> Dict[tuple, dict]:
    """Plain mapping view of a selection result: key tuple -> field values."""
    return {
        tuple(row[v] for v in by_vars): {f: row[f] for f in fields}
        for _, row in winners.iterrows()
    }


def _normalize_new_vars(new_vars: Union[Mapping[str, str], Sequence[str]]) -> Dict[str, str]:
    if isinstance(new_vars, Mapping):
        return dict(new_vars)
    return {name: name for name in new_vars}


def merge_new_vars(
    dataset: pd.DataFrame,
    additions: pd.DataFrame,
    by_vars: Sequence[str],
    new_vars: Mapping[str, str],
) -> pd.DataFrame:
    """Left-join renamed `additions` columns onto `dataset`, replacing earlier values.

    Re-running a derivation replaces the columns it owns, so the result is the
    same no matter how often it is applied.
    """
    by_vars = list(by_vars)
    incoming = additions[by_vars].copy()
    for tgt, src in new_vars.items():
        incoming[tgt] = additions[src].to_numpy()

    existing = [c for c in new_vars if c in dataset.columns]
    if existing:
        log.debug("replacing_derived_columns", columns=existing)
    base = dataset.drop(columns=existing)
    merged = base.merge(incoming, on=by_vars, how="left", validate="many_to_one")
    merged.index = dataset.index
    return merged


def derive_vars_merged(
    dataset: pd.DataFrame,
    dataset_add: pd.DataFrame,
    by_vars: Sequence[str],
    new_vars: Union[Mapping[str, str], Sequence[str]],
    filter_add: Condition = None,
    order: Optional[Sequence[str]] = None,
    mode: str = "first",
    dataset_name: str = "dataset_add",
) -> pd.DataFrame:
    """Add variables from one selected `dataset_add` record per subject.

    `new_vars` maps target name to source column (a sequence keeps the names).
    Without `order`, the filtered records must already be unique per subject.
    Subjects with no qualifying record keep their row with missing values.
    """
    mapping = _normalize_new_vars(new_vars)
    by_vars = list(by_vars)
    require_columns(dataset, by_vars, table="dataset")
    require_columns(dataset_add, by_vars + list(mapping.values()), table=dataset_name)

    if order:
        selected = select_extreme(
            dataset_add, by_vars, order, mode=mode, condition=filter_add, table=dataset_name
        )
    else:
        selected = dataset_add[evaluate_condition(filter_add, dataset_add)]
        duplicated = selected.duplicated(subset=by_vars, keep=False)
        if duplicated.any():
            raise ValueError(
                f"{dataset_name}: {int(duplicated.sum())} records share {by_vars}; pass `order` to select one"
            )

    out = merge_new_vars(dataset, selected, by_vars, mapping)
    for target in mapping:
        log.info(
            "derived_merged_variable",
            source=dataset_name,
            variable=target,
            rows=len(out),
            missing=int(out[target].isna().sum()),
        )
    return out


__all__ = [
    "evaluate_condition",
    "select_extreme",
    "winners_by_key",
    "merge_new_vars",
    "derive_vars_merged",
]
