# Row predicates shared by filtered measures, funnels and rule cascades.
# A predicate maps a frame to a boolean mask; nulls never satisfy a comparison.
import operator
from typing import Any, Callable, Dict, Union

import pandas as pd

from ..exceptions import ConfigurationError, PipelineError

Predicate = Callable[[pd.DataFrame], pd.Series]
PredicateSpec = Union[Dict[str, Any], Predicate]

_COMPARISONS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


def _column(df: pd.DataFrame, field: str) -> pd.Series:
    if field not in df.columns:
        raise PipelineError(f"Predicate field '{field}' missing from input")
    return df[field]


def _compare(field: str, op: str, value: Any) -> Predicate:
    compare = _COMPARISONS[op]

    def predicate(df: pd.DataFrame) -> pd.Series:
        column = _column(df, field)
        return pd.Series(
            [False if pd.isna(v) else bool(compare(v, value)) for v in column],
            index=df.index,
            dtype=bool,
        )
    return predicate


def _isin(field: str, values: Any) -> Predicate:
    allowed = set(values)

    def predicate(df: pd.DataFrame) -> pd.Series:
        column = _column(df, field)
        return pd.Series(
            [False if pd.isna(v) else v in allowed for v in column],
            index=df.index,
            dtype=bool,
        )
    return predicate


def always(df: pd.DataFrame) -> pd.Series:
    return pd.Series(True, index=df.index, dtype=bool)


def compile_predicate(spec: PredicateSpec) -> Predicate:
    # {"field": "percentage_laid_off", "op": "lt", "value": 10}
    # {"all": [...]} / {"any": [...]} / {"always": true}
    if callable(spec):
        return spec
    if not isinstance(spec, dict):
        raise ConfigurationError(f"Invalid predicate: {spec!r}")

    if spec.get("always"):
        return always
    if "all" in spec or "any" in spec:
        combine_all = "all" in spec
        parts = [compile_predicate(part) for part in spec["all" if combine_all else "any"]]

        def combined(df: pd.DataFrame) -> pd.Series:
            mask = pd.Series(combine_all, index=df.index, dtype=bool)
            for part in parts:
                mask = (mask & part(df)) if combine_all else (mask | part(df))
            return mask
        return combined

    field = spec.get("field")
    op = spec.get("op", "eq")
    if not field:
        raise ConfigurationError(f"Predicate needs a field: {spec!r}")
    if op in _COMPARISONS:
        return _compare(field, op, spec.get("value"))
    if op == "in":
        return _isin(field, spec.get("value", []))
    if op == "not_null":
        return lambda df: _column(df, field).notna().astype(bool)
    if op == "is_null":
        return lambda df: _column(df, field).isna().astype(bool)
    raise ConfigurationError(f"Unknown predicate op '{op}'")
