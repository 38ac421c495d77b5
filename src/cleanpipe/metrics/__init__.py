# Metrics derivation - stage 4

# Named views computed from the cleaned table:
# - group aggregation with guarded ratios
# - dense rank, running / rolling totals, period-over-period deltas
# - funnels and segmentation scoring (score bands + rule cascade)

from .aggregation import Measure, Ratio, aggregate, safe_divide
from .engine import MetricsEngine
from .funnel import FunnelStage, funnel
from .predicates import compile_predicate
from .registry import REGISTRY, ViewDefinition, ViewRegistry
from .segmentation import RuleCascade, ScoreBands, rank_scores, rfm_table, score_rfm
from .windows import dense_rank, period_delta, rolling_total, running_total, top_n_per_partition

__all__ = [
    "Measure", "Ratio", "aggregate", "safe_divide",
    "MetricsEngine",
    "FunnelStage", "funnel",
    "compile_predicate",
    "REGISTRY", "ViewDefinition", "ViewRegistry",
    "RuleCascade", "ScoreBands", "rank_scores", "rfm_table", "score_rfm",
    "dense_rank", "period_delta", "rolling_total", "running_total", "top_n_per_partition",
]
