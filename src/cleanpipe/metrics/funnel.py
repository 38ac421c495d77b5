# Funnel: ordered stages, a row reaches stage i only if it satisfies stages 0..i,
# so every stage count is bounded by the count of the stage before it.
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import pandas as pd

from ..exceptions import MetricComputationError, PipelineError
from .aggregation import safe_divide
from .predicates import PredicateSpec, compile_predicate

FUNNEL_COLUMNS = ["stage", "stage_order", "count", "step_conversion_pct", "overall_conversion_pct", "drop_off"]


@dataclass(frozen=True)
class FunnelStage:
    name: str
    predicate: PredicateSpec


def _stages(stages: Sequence[Union[FunnelStage, Tuple[str, PredicateSpec]]]) -> List[FunnelStage]:
    return [stage if isinstance(stage, FunnelStage) else FunnelStage(*stage) for stage in stages]


def funnel(
    df: pd.DataFrame,
    stages: Sequence[Union[FunnelStage, Tuple[str, PredicateSpec]]],
    by: Optional[Sequence[str]] = None,
    view: str = "funnel",
) -> pd.DataFrame:
    stages = _stages(stages)
    by = list(by or [])
    if not stages:
        raise MetricComputationError(view, "funnel needs at least one stage")
    missing = [col for col in by if col not in df.columns]
    if missing:
        raise MetricComputationError(view, f"columns missing from input: {missing}")

    work = df[by].copy()
    reached = pd.Series(True, index=df.index, dtype=bool)
    stage_columns = []
    for order, stage in enumerate(stages):
        try:
            reached = reached & compile_predicate(stage.predicate)(df)
        except PipelineError as e:
            raise MetricComputationError(view, str(e))
        column = f"__stage_{order}"
        work[column] = reached.astype("int64")
        stage_columns.append(column)

    if by:
        counts = work.groupby(by, dropna=False, sort=True)[stage_columns].sum()
    else:
        counts = work[stage_columns].sum().to_frame().T

    rows = []
    for group_key, group_counts in counts.iterrows():
        group_values = group_key if isinstance(group_key, tuple) else (group_key,)
        first = int(group_counts[stage_columns[0]])
        previous = None
        for order, (stage, column) in enumerate(zip(stages, stage_columns)):
            count = int(group_counts[column])
            row = dict(zip(by, group_values)) if by else {}
            row.update({
                "stage": stage.name,
                "stage_order": order + 1,
                "count": count,
                "step_conversion_pct": safe_divide(count * 100, previous) if previous is not None else None,
                "overall_conversion_pct": safe_divide(count * 100, first),
                "drop_off": previous - count if previous is not None else 0,
            })
            rows.append(row)
            previous = count

    result = pd.DataFrame(rows, columns=by + FUNNEL_COLUMNS)
    for col in ("step_conversion_pct", "overall_conversion_pct"):
        result[col] = pd.to_numeric(result[col], errors="coerce").astype("Float64").round(2)
    return result
