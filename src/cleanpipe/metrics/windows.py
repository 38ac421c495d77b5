# Ranked and windowed metrics
# Every function returns a new frame sorted by (partition, order) with one
# added column; the input frame is left untouched.
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import MetricComputationError
from .aggregation import safe_divide

Columns = Union[str, Sequence[str]]


def _as_list(columns: Optional[Columns]) -> List[str]:
    if columns is None:
        return []
    if isinstance(columns, str):
        return [columns]
    return list(columns)


def _check_columns(df: pd.DataFrame, columns: List[str], view: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise MetricComputationError(view, f"columns missing from input: {missing}")


def _ordered(df: pd.DataFrame, order_by: List[str], partition_by: List[str]) -> pd.DataFrame:
    return df.sort_values(partition_by + order_by, kind="mergesort").reset_index(drop=True)


def _per_partition(
    df: pd.DataFrame, value: str, partition_by: List[str], func: Callable[[pd.Series], pd.Series]
) -> pd.Series:
    if not partition_by:
        return func(df[value])
    return df.groupby(partition_by, dropna=False, sort=False)[value].transform(func)


def _as_float64(series: pd.Series) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce").astype("Float64")
    return pd.Series(values.to_numpy(dtype="float64", na_value=np.nan), index=series.index)


def dense_rank(
    df: pd.DataFrame,
    by: str,
    partition_by: Optional[Columns] = None,
    ascending: bool = False,
    name: str = "rank",
    view: str = "dense_rank",
) -> pd.DataFrame:
    partitions = _as_list(partition_by)
    _check_columns(df, [by] + partitions, view)

    ranked = df.copy()
    if partitions:
        ranks = ranked.groupby(partitions, dropna=False, sort=False)[by].rank(method="dense", ascending=ascending)
    else:
        ranks = ranked[by].rank(method="dense", ascending=ascending)
    # null metric values stay unranked
    ranked[name] = ranks.astype("Float64").astype("Int64")
    return ranked.sort_values(partitions + [name], kind="mergesort", na_position="last").reset_index(drop=True)


def top_n_per_partition(
    df: pd.DataFrame,
    by: str,
    n: int,
    partition_by: Optional[Columns] = None,
    ascending: bool = False,
    name: str = "rank",
    view: str = "top_n",
) -> pd.DataFrame:
    ranked = dense_rank(df, by, partition_by, ascending=ascending, name=name, view=view)
    keep = ranked[name].notna() & (ranked[name] <= n)
    return ranked.loc[keep.fillna(False).astype(bool)].reset_index(drop=True)


def running_total(
    df: pd.DataFrame,
    value: str,
    order_by: Columns,
    partition_by: Optional[Columns] = None,
    name: Optional[str] = None,
    view: str = "running_total",
) -> pd.DataFrame:
    orders, partitions = _as_list(order_by), _as_list(partition_by)
    _check_columns(df, [value] + orders + partitions, view)

    def running(series: pd.Series) -> pd.Series:
        values = _as_float64(series)
        seen = values.notna().cumsum() > 0
        return values.fillna(0).cumsum().where(seen)

    ordered = _ordered(df, orders, partitions)
    ordered[name or f"running_{value}"] = _per_partition(ordered, value, partitions, running).astype("Float64")
    return ordered


def rolling_total(
    df: pd.DataFrame,
    value: str,
    order_by: Columns,
    window: int = 3,
    partition_by: Optional[Columns] = None,
    name: Optional[str] = None,
    view: str = "rolling_total",
) -> pd.DataFrame:
    if window < 1:
        raise MetricComputationError(view, f"window must be >= 1, got {window}")
    orders, partitions = _as_list(order_by), _as_list(partition_by)
    _check_columns(df, [value] + orders + partitions, view)

    def rolling(series: pd.Series) -> pd.Series:
        # rows i-window+1 .. i, fewer at the start of the series
        return _as_float64(series).rolling(window, min_periods=1).sum()

    ordered = _ordered(df, orders, partitions)
    ordered[name or f"rolling_{window}_{value}"] = _per_partition(ordered, value, partitions, rolling).astype("Float64")
    return ordered


def period_delta(
    df: pd.DataFrame,
    value: str,
    order_by: Columns,
    partition_by: Optional[Columns] = None,
    name: Optional[str] = None,
    round_to: Optional[int] = None,
    view: str = "period_delta",
) -> pd.DataFrame:
    orders, partitions = _as_list(order_by), _as_list(partition_by)
    _check_columns(df, [value] + orders + partitions, view)

    def delta(series: pd.Series) -> pd.Series:
        current = _as_float64(series)
        previous = current.shift(1)
        change = safe_divide((current - previous) * 100, previous)
        return change.round(round_to) if round_to is not None else change

    ordered = _ordered(df, orders, partitions)
    ordered[name or f"{value}_pct_change"] = _per_partition(ordered, value, partitions, delta).astype("Float64")
    return ordered
