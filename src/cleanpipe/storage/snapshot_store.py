# Snapshot store
# Ghi bảng đã làm sạch và các view ra Parquet (pyarrow, nén snappy)
from pathlib import Path
from typing import Dict, Any, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class SnapshotStore:

    def __init__(self, base_dir: str = "output/snapshots", compression: str = "snappy"):
        self.base_dir = Path(base_dir)
        self.compression = compression

    def path_for(self, name: str) -> Path:
        # removesuffix: chỉ xóa đúng đuôi .parquet
        return self.base_dir / f"{name.removesuffix('.parquet')}.parquet"

    def write(self, df: pd.DataFrame, name: str) -> str:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Convert to PyArrow Table, the frame index is never part of a snapshot
        table = pa.Table.from_pandas(df, preserve_index=False)
        pq.write_table(
            table,
            str(path),
            compression=self.compression,
            use_deprecated_int96_timestamps=False
        )

        logger.info(f"Wrote snapshot {path}", rows=len(df), columns=len(df.columns))
        return str(path)

    def write_many(self, frames: Dict[str, pd.DataFrame], prefix: Optional[str] = None) -> Dict[str, str]:
        return {
            name: self.write(df, f"{prefix}/{name}" if prefix else name)
            for name, df in frames.items()
        }

    def read(self, name: str) -> pd.DataFrame:
        path = self.path_for(name)
        if not path.exists():
            raise FileNotFoundError(f"Snapshot not found: {path}")
        return pq.read_table(str(path)).to_pandas()

    def describe(self, name: str) -> Dict[str, Any]:
        path = self.path_for(name)
        metadata = pq.read_metadata(str(path))
        return {
            "path": str(path),
            "rows": metadata.num_rows,
            "columns": metadata.num_columns,
            "file_size_bytes": path.stat().st_size,
        }
