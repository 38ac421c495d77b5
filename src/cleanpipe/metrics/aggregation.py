# Group aggregation with guarded ratios
# count / sum over an empty partition is 0, avg and ratios are null (<NA>)
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..exceptions import MetricComputationError, PipelineError
from .predicates import PredicateSpec, compile_predicate

AGGREGATE_FUNCS = ("count", "count_nonnull", "sum", "avg", "min", "max", "nunique")
_ZERO_FILLED = ("count", "count_nonnull", "sum", "nunique")
_ALL = "__all__"


@dataclass(frozen=True)
class Measure:
    name: str
    func: str
    field: Optional[str] = None
    where: Optional[PredicateSpec] = None


@dataclass(frozen=True)
class Ratio:
    name: str
    numerator: str
    denominator: str
    scale: float = 1.0
    round_to: Optional[int] = None


def _as_float(values: Any, index: pd.Index) -> pd.Series:
    series = values if isinstance(values, pd.Series) else pd.Series(values, index=index)
    return pd.to_numeric(series, errors="coerce").astype("Float64")


def safe_divide(numerator: Any, denominator: Any) -> Any:
    # scalars -> float or None; Series -> nullable Float64 with <NA> where the denominator is 0 / null
    if not isinstance(numerator, pd.Series) and not isinstance(denominator, pd.Series):
        if numerator is None or denominator is None or pd.isna(numerator) or pd.isna(denominator):
            return None
        if denominator == 0:
            return None
        return float(numerator) / float(denominator)

    index = numerator.index if isinstance(numerator, pd.Series) else denominator.index
    num = _as_float(numerator, index)
    den = _as_float(denominator, index)
    valid = (
        num.notna().to_numpy(dtype=bool)
        & den.notna().to_numpy(dtype=bool)
        & (den.fillna(0) != 0).to_numpy(dtype=bool)
    )
    result = pd.Series(pd.NA, index=index, dtype="Float64")
    result.loc[valid] = (num[valid] / den[valid]).to_numpy()
    return result


def _numeric(df: pd.DataFrame, field: str, view: str) -> pd.Series:
    values = df[field]
    if values.dtype == object:
        try:
            values = pd.to_numeric(values)
        except (TypeError, ValueError) as e:
            raise MetricComputationError(view, f"field '{field}' is not numeric: {e}")
    return values


def _measure(df: pd.DataFrame, keys: List[pd.Series], measure: Measure, view: str) -> pd.Series:
    if measure.func not in AGGREGATE_FUNCS:
        raise MetricComputationError(view, f"unknown aggregate '{measure.func}'")
    if measure.func != "count" and not measure.field:
        raise MetricComputationError(view, f"measure '{measure.name}' needs a field")

    try:
        mask = compile_predicate(measure.where)(df) if measure.where is not None else pd.Series(True, index=df.index)
    except PipelineError as e:
        raise MetricComputationError(view, str(e))

    if measure.func == "count":
        return mask.astype("int64").groupby(keys, dropna=False, sort=True).sum()

    if measure.func == "nunique":
        values = df[measure.field].where(mask)
        return values.groupby(keys, dropna=False, sort=True).nunique()

    if measure.func == "count_nonnull":
        present = df[measure.field].notna() & mask
        return present.astype("int64").groupby(keys, dropna=False, sort=True).sum()

    values = _numeric(df, measure.field, view)
    values = values.where(mask)
    grouped = values.groupby(keys, dropna=False, sort=True)
    if measure.func == "sum":
        return grouped.sum(min_count=0)
    if measure.func == "avg":
        counts = values.notna().astype("int64").groupby(keys, dropna=False, sort=True).sum()
        return safe_divide(grouped.sum(min_count=0), counts)
    if measure.func == "min":
        return grouped.min()
    return grouped.max()


def _declared_index(by: Sequence[str], categories: Dict[str, Sequence[Any]]) -> pd.Index:
    if len(by) == 1:
        return pd.Index(list(categories[by[0]]), name=by[0])
    return pd.MultiIndex.from_product([list(categories[col]) for col in by], names=list(by))


def aggregate(
    df: pd.DataFrame,
    by: Sequence[str],
    measures: Sequence[Measure],
    ratios: Sequence[Ratio] = (),
    categories: Optional[Dict[str, Sequence[Any]]] = None,
    view: str = "aggregate",
) -> pd.DataFrame:
    by = list(by)
    needed = by + [m.field for m in measures if m.field]
    missing = [col for col in needed if col not in df.columns]
    if missing:
        raise MetricComputationError(view, f"columns missing from input: {missing}")

    keys = [df[col] for col in by] if by else [pd.Series(0, index=df.index, name=_ALL)]
    result = pd.DataFrame({m.name: _measure(df, keys, m, view) for m in measures})

    if categories:
        undeclared = [col for col in by if col not in categories]
        if undeclared:
            raise MetricComputationError(view, f"categories missing for dimensions {undeclared}")
        declared = _declared_index(by, categories)
        extra = [value for value in result.index if value not in set(declared)]
        result = result.reindex(declared.append(pd.Index(extra)) if extra else declared)
    elif not by:
        result = result.reindex([0])

    for m in measures:
        if m.func in _ZERO_FILLED:
            result[m.name] = result[m.name].fillna(0)
            if m.func != "sum":
                result[m.name] = result[m.name].astype("int64")

    for ratio in ratios:
        for col in (ratio.numerator, ratio.denominator):
            if col not in result.columns:
                raise MetricComputationError(view, f"ratio '{ratio.name}' refers to unknown measure '{col}'")
        value = safe_divide(_as_float(result[ratio.numerator], result.index) * ratio.scale, result[ratio.denominator])
        if ratio.round_to is not None:
            value = value.round(ratio.round_to)
        result[ratio.name] = value

    if by:
        result.index.names = by
        result = result.reset_index()
    else:
        result = result.reset_index(drop=True)
    return result[by + [m.name for m in measures] + [r.name for r in ratios]]


def rounded(series: pd.Series, digits: int) -> pd.Series:
    return _as_float(series, series.index).round(digits)
