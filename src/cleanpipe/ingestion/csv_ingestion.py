# Reads raw CSV / Parquet files into a DataFrame for staging.
# Every column is read as text and blanks are kept as '' so that the
# blank normalizer sees exactly what the file contains.
import os
import time
from pathlib import Path
from typing import Dict, Any, Optional

import pandas as pd

from ..utils.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)


class CSVIngestion:

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        # config là section "ingestion" trong config.yaml
        self.config = config or {}
        self.pipeline_logger = PipelineLogger(__name__)

    # file mới nhất (theo thời gian sửa đổi) của một dataset trong thư mục raw
    @staticmethod
    def latest_file(raw_dir: str, dataset: str, extension: str = "csv") -> str:
        candidates = list(Path(raw_dir).glob(f"{dataset}*.{extension}"))
        if not candidates:
            raise FileNotFoundError(f"No raw files for dataset '{dataset}' in {raw_dir}")
        return str(max(candidates, key=os.path.getmtime))

    def read(self, input_path: str) -> pd.DataFrame:
        started = time.perf_counter()
        path = str(input_path)
        if path.endswith('.parquet'):
            df = pd.read_parquet(path)
        elif path.endswith('.csv'):
            df = self._read_csv(path)
        else:
            raise ValueError(f"Unsupported file format: {input_path}")

        self.pipeline_logger.log_ingestion_complete(
            source=Path(path).name,
            rows=len(df),
            duration=round(time.perf_counter() - started, 4),
        )
        return df

    def _read_csv(self, input_path: str) -> pd.DataFrame:
        return pd.read_csv(
            input_path,
            delimiter=self.config.get("delimiter", ","),
            encoding=self.config.get("encoding", "utf-8"),
            dtype=str,
            keep_default_na=False,  # '' stays '' until the blank normalizer runs
            low_memory=False
        )
