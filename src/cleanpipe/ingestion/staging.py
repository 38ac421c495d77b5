# Staging: the first pipeline stage
# Produces a text-only copy of the raw table with canonical column names
# and an explicit ingestion sequence used later for "first occurrence".
import datetime as dt
from typing import Any, Dict, List, Optional

import pandas as pd

from ..exceptions import PipelineError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

ROW_NUMBER_COLUMN = "_row_number"
METADATA_PREFIX = "_"

# UTF-8 byte order mark, as read correctly and as read through latin-1
_BOM_MARKERS = ("\ufeff", "\u00ef\u00bb\u00bf")


def clean_header(name: Any) -> str:
    header = str(name)
    for marker in _BOM_MARKERS:
        header = header.replace(marker, "")
    return header.strip()


def data_columns(df: pd.DataFrame) -> List[str]:
    # Business columns only; metadata columns are prefixed with "_"
    return [col for col in df.columns if not str(col).startswith(METADATA_PREFIX)]


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def stage_table(
    raw_df: pd.DataFrame,
    rename: Optional[Dict[str, str]] = None,
    drop: Optional[List[str]] = None,
) -> pd.DataFrame:
    if ROW_NUMBER_COLUMN in raw_df.columns:
        raise PipelineError(
            f"Input already carries '{ROW_NUMBER_COLUMN}'; "
            "re-running the pipeline on a staged or cleaned table is not supported"
        )

    staged = raw_df.copy()
    staged.columns = [clean_header(col) for col in staged.columns]

    rename_map = {clean_header(src): dst for src, dst in (rename or {}).items()}
    unknown = [src for src in rename_map if src not in staged.columns]
    if unknown:
        logger.warning("Rename sources not present in input", columns=unknown)
    staged = staged.rename(columns=rename_map)

    if drop:
        staged = staged.drop(columns=[col for col in drop if col in staged.columns])

    duplicated = staged.columns[staged.columns.duplicated()].tolist()
    if duplicated:
        raise PipelineError(f"Duplicate column names after staging: {duplicated}")

    for col in staged.columns:
        staged[col] = pd.Series(
            [_to_text(value) for value in staged[col]],
            index=staged.index,
            dtype=object,
        )

    staged = staged.reset_index(drop=True)
    staged[ROW_NUMBER_COLUMN] = range(len(staged))

    logger.info(f"Staged {len(staged)} rows with {len(data_columns(staged))} columns")
    return staged
