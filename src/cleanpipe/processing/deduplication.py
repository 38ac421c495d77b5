# Exact-duplicate removal
# Rows are partitioned by the dedup key, ordered by ingestion sequence
# inside each partition, and only ordinal 1 is kept.
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd

from ..exceptions import PipelineError
from ..ingestion.staging import ROW_NUMBER_COLUMN, data_columns
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class DedupResult:
    key: List[str]
    input_rows: int
    distinct_keys: int
    removed: int
    order_defined: bool = True
    removed_row_numbers: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "input_rows": self.input_rows,
            "distinct_keys": self.distinct_keys,
            "removed": self.removed,
            "order_defined": self.order_defined,
        }


class Deduplicator:

    def __init__(self, key: Optional[List[str]] = None, order_by: str = ROW_NUMBER_COLUMN):
        # key=None: every business column takes part in the key
        self.key = list(key) if key else None
        self.order_by = order_by

    def resolve_key(self, df: pd.DataFrame) -> List[str]:
        key = self.key or data_columns(df)
        missing = [col for col in key if col not in df.columns]
        if missing:
            raise PipelineError(f"Dedup key columns missing from input: {missing}")
        if not key:
            raise PipelineError("Dedup key is empty")
        return key

    def apply(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, DedupResult]:
        key = self.resolve_key(df)

        order_defined = self.order_by in df.columns
        if order_defined:
            ordered = df.sort_values(self.order_by, kind="mergesort")
        else:
            logger.warning(
                "Ingestion order undefined; first occurrence follows frame order",
                order_by=self.order_by,
            )
            ordered = df

        # duplicated() treats nulls as equal, so null-key rows still collide
        is_duplicate = ordered.duplicated(subset=key, keep="first")
        deduped = ordered.loc[~is_duplicate].reset_index(drop=True)

        removed_rows = ordered.loc[is_duplicate]
        removed_numbers = (
            removed_rows[self.order_by].astype(int).tolist() if order_defined else []
        )

        result = DedupResult(
            key=key,
            input_rows=len(df),
            distinct_keys=len(deduped),
            removed=int(is_duplicate.sum()),
            order_defined=order_defined,
            removed_row_numbers=removed_numbers,
        )
        logger.info(f"Removed {result.removed} duplicate rows", distinct_keys=result.distinct_keys)
        return deduped, result
