# Segmentation scoring
# 1. bucket a continuous metric into ordinal bands ([lower, upper), last band closed)
# 2. combine band scores through an ordered rule cascade, first match wins
from bisect import bisect_right
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError, MetricComputationError
from .predicates import PredicateSpec, compile_predicate


class ScoreBands:

    def __init__(self, breakpoints: Sequence[float], labels: Sequence[Any]):
        edges = [float(edge) for edge in breakpoints]
        if len(edges) < 2:
            raise ConfigurationError("ScoreBands needs at least two breakpoints")
        # a single degenerate band [v, v] is allowed when every value is equal
        increasing = all(lower < upper for lower, upper in zip(edges, edges[1:]))
        if not increasing and not (len(edges) == 2 and edges[0] == edges[1]):
            raise ConfigurationError(f"Breakpoints must be strictly increasing: {edges}")
        if len(labels) != len(edges) - 1:
            raise ConfigurationError(
                f"{len(edges) - 1} bands need {len(edges) - 1} labels, got {len(labels)}"
            )
        self.breakpoints = edges
        self.labels = list(labels)

    # breakpoints recomputed from the data itself (quantiles), never hardcoded
    @classmethod
    def from_quantiles(
        cls,
        values: Sequence[float],
        n: int = 5,
        labels: Optional[Sequence[Any]] = None,
        ascending: bool = True,
    ) -> "ScoreBands":
        clean = pd.to_numeric(pd.Series(values), errors="coerce").dropna().to_numpy(dtype=float)
        if clean.size == 0:
            raise MetricComputationError("score_bands", "cannot derive quantile bands from no values")

        edges = sorted(set(np.quantile(clean, np.linspace(0, 1, n + 1)).tolist()))
        if len(edges) == 1:
            edges = [edges[0], edges[0]]
        band_count = len(edges) - 1

        if labels is None:
            scores = list(range(1, band_count + 1))
            labels = scores if ascending else scores[::-1]
        else:
            labels = list(labels)[:band_count]
        return cls(edges, labels)

    def score(self, value: Any) -> Any:
        if value is None or pd.isna(value):
            return None
        value = float(value)
        lower, upper = self.breakpoints[0], self.breakpoints[-1]
        if value < lower or value > upper:
            return None
        if value == upper:
            return self.labels[-1]
        return self.labels[bisect_right(self.breakpoints, value) - 1]

    def assign(self, series: pd.Series) -> pd.Series:
        return pd.Series([self.score(value) for value in series], index=series.index, dtype=object)


class RuleCascade:
    # ordered (predicate, label) pairs; rules may overlap so order is significant

    def __init__(self, rules: Sequence[Tuple[PredicateSpec, Any]], default: Any = None):
        self.rules = [(compile_predicate(predicate), label) for predicate, label in rules]
        self.labels = [label for _, label in rules]
        self.default = default

    def evaluate(self, df: pd.DataFrame) -> pd.Series:
        labels = pd.Series(self.default, index=df.index, dtype=object)
        assigned = pd.Series(False, index=df.index, dtype=bool)
        for predicate, label in self.rules:
            hit = predicate(df) & ~assigned
            labels[hit] = label
            assigned |= hit
        return labels


def rank_scores(series: pd.Series, n: int = 5, ascending: bool = True) -> pd.Series:
    # percentile rank stretched onto 1..n; tied values share the lowest score, null stays null
    values = pd.to_numeric(series, errors="coerce").astype(float)
    ranks = values.rank(method="min", ascending=ascending)
    count = int(values.notna().sum())
    position = (ranks - 1) / (count - 1) if count > 1 else ranks * 0.0
    return (np.floor(position * (n - 1) + 0.5) + 1).astype("Int64")


def _score(field: str, op: str, value: int) -> dict:
    return {"field": field, "op": op, "value": value}


DEFAULT_RFM_RULES: List[Tuple[PredicateSpec, str]] = [
    ({"all": [_score("r_score", "ge", 4), _score("f_score", "ge", 4), _score("m_score", "ge", 4)]}, "Champions"),
    ({"all": [_score("r_score", "ge", 3), _score("f_score", "ge", 4)]}, "Loyal Customers"),
    ({"all": [_score("r_score", "ge", 4), _score("f_score", "le", 1)]}, "New Customers"),
    ({"all": [_score("r_score", "ge", 4)]}, "Potential Loyalists"),
    ({"all": [_score("r_score", "le", 2), _score("f_score", "ge", 3)]}, "At Risk"),
    ({"all": [_score("r_score", "le", 1), _score("f_score", "le", 1)]}, "Lost"),
    ({"all": [_score("r_score", "le", 2)]}, "Hibernating"),
]


def rfm_table(
    df: pd.DataFrame,
    customer: str,
    order_date: str,
    amount: str,
    order_id: Optional[str] = None,
    reference_date: Optional[pd.Timestamp] = None,
    view: str = "rfm",
) -> pd.DataFrame:
    needed = [customer, order_date, amount] + ([order_id] if order_id else [])
    missing = [col for col in needed if col not in df.columns]
    if missing:
        raise MetricComputationError(view, f"columns missing from input: {missing}")

    orders = df.loc[df[customer].notna() & df[order_date].notna()].copy()
    orders[order_date] = pd.to_datetime(orders[order_date])
    columns = [customer, "recency_days", "frequency", "monetary"]
    if orders.empty:
        return pd.DataFrame(columns=columns)

    reference = pd.Timestamp(reference_date) if reference_date is not None else orders[order_date].max()
    grouped = orders.groupby(customer, sort=True)
    last_order = grouped[order_date].max()
    frequency = grouped[order_id].nunique() if order_id else grouped.size()
    monetary = pd.to_numeric(orders[amount], errors="coerce").groupby(orders[customer], sort=True).sum(min_count=0)

    rfm = pd.DataFrame({
        "recency_days": (reference - last_order).dt.days.astype("Int64"),
        "frequency": frequency.astype("Int64"),
        "monetary": monetary.astype("Float64"),
    })
    rfm.index.name = customer
    return rfm.reset_index()[columns]


def score_rfm(
    rfm: pd.DataFrame,
    bands: int = 5,
    rules: Optional[Sequence[Tuple[PredicateSpec, Any]]] = None,
    default: str = "Needs Attention",
) -> pd.DataFrame:
    scored = rfm.copy()
    if scored.empty:
        for col in ("r_score", "f_score", "m_score", "rfm_score", "segment"):
            scored[col] = pd.Series(dtype=object)
        return scored

    # recency: fewer days since last order scores higher
    scored["r_score"] = rank_scores(scored["recency_days"], bands, ascending=False)
    scored["f_score"] = rank_scores(scored["frequency"], bands)
    scored["m_score"] = rank_scores(scored["monetary"], bands)
    scored["rfm_score"] = (
        scored["r_score"].astype(str) + scored["f_score"].astype(str) + scored["m_score"].astype(str)
    )
    scored["segment"] = RuleCascade(rules or DEFAULT_RFM_RULES, default=default).evaluate(scored)
    return scored
