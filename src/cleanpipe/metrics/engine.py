# Computes registered views over a cleaned frame
# A view either succeeds with exactly its declared columns or raises
# MetricComputationError; partial results are never returned.
import time
from typing import Dict, List, Optional, Sequence

import pandas as pd

from ..exceptions import MetricComputationError, PipelineError
from ..utils.logging_config import PipelineLogger, get_logger
from .registry import REGISTRY, ViewDefinition, ViewRegistry

# importing the view modules registers their views
from . import layoff_views, order_views  # noqa: F401

logger = get_logger(__name__)


class MetricsEngine:

    def __init__(self, registry: ViewRegistry = REGISTRY):
        self.registry = registry
        self.pipeline_logger = PipelineLogger(__name__)

    def compute_view(self, df: pd.DataFrame, name: str) -> pd.DataFrame:
        definition = self.registry.get(name)
        started = time.perf_counter()
        try:
            # builders get their own copy, the cleaned frame is shared by every view
            result = definition.builder(df.copy())
        except MetricComputationError:
            raise
        except (KeyError, PipelineError) as e:
            raise MetricComputationError(name, str(e))

        result = self._check_columns(definition, result)
        self.pipeline_logger.log_view_computed(name, len(result), round(time.perf_counter() - started, 4))
        return result

    def compute(self, df: pd.DataFrame, names: Optional[Sequence[str]] = None,
                dataset: Optional[str] = None) -> Dict[str, pd.DataFrame]:
        names = list(names) if names is not None else self.registry.names(dataset)
        logger.info(f"Computing {len(names)} metric views", dataset=dataset)
        views = {}
        for name in names:
            try:
                views[name] = self.compute_view(df, name)
            except MetricComputationError as e:
                self.pipeline_logger.log_error("compute_view", str(e), {"view": name})
                raise
        return views

    @staticmethod
    def _check_columns(definition: ViewDefinition, result: pd.DataFrame) -> pd.DataFrame:
        declared: List[str] = list(definition.columns)
        actual = list(result.columns)
        if sorted(actual) != sorted(declared) or len(actual) != len(declared):
            raise MetricComputationError(
                definition.name,
                f"output columns {actual} do not match declared schema {declared}",
            )
        return result[declared].reset_index(drop=True)
