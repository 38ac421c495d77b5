# View warehouse
# Lưu snapshot đã làm sạch và các metric view vào database qua SQLAlchemy
# (mặc định sqlite, bất kỳ URL SQLAlchemy nào cũng dùng được)

from typing import Dict, Any, List, Optional

import pandas as pd
from sqlalchemy import create_engine, inspect, text

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_WAREHOUSE_URL = "sqlite:///output/cleanpipe.db"


class ViewWarehouse:

    def __init__(self, url: str = DEFAULT_WAREHOUSE_URL, schema: Optional[str] = None):
        # Khởi tạo kết nối warehouse
        # Args:
        #   url: SQLAlchemy URL (sqlite:///..., postgresql://...)
        #   schema: schema đích, None = schema mặc định của database
        self.url = url
        self.schema = schema
        self.engine = create_engine(url)

    @classmethod
    def from_config(cls, storage_config: Dict[str, Any]) -> "ViewWarehouse":
        return cls(
            storage_config.get("warehouse_url") or DEFAULT_WAREHOUSE_URL,
            storage_config.get("schema"),
        )

    @staticmethod
    def _prepare(df: pd.DataFrame) -> pd.DataFrame:
        # nullable pandas dtypes -> values the DB driver understands
        prepared = df.copy()
        for col in prepared.columns:
            if pd.api.types.is_extension_array_dtype(prepared[col].dtype):
                prepared[col] = prepared[col].astype(object)
            prepared[col] = prepared[col].where(prepared[col].notna(), None)
        return prepared

    def write_table(
        self,
        df: pd.DataFrame,
        table_name: str,
        if_exists: str = "replace",
        chunksize: int = 10000
    ) -> int:
        # Load DataFrame vào bảng
        # Returns:
        #   số dòng đã ghi
        try:
            self._prepare(df).to_sql(
                table_name,
                self.engine,
                schema=self.schema,
                if_exists=if_exists,
                index=False,
                chunksize=chunksize,
            )
            logger.info(f"Successfully loaded {len(df)} rows to {table_name}")
            return len(df)

        except Exception as e:
            logger.error(f"Failed to load data to {table_name}: {str(e)}")
            raise

    def write_views(self, views: Dict[str, pd.DataFrame], prefix: str = "") -> Dict[str, int]:
        return {name: self.write_table(df, f"{prefix}{name}") for name, df in views.items()}

    def query_data(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> pd.DataFrame:
        # Thực thi query SQL và trả về DataFrame
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(query), params or {})
                df = pd.DataFrame(result.fetchall(), columns=list(result.keys()))
                logger.info(f"Query executed successfully, returned {len(df)} rows")
                return df

        except Exception as e:
            logger.error(f"Query failed: {str(e)}")
            raise

    def list_tables(self) -> List[str]:
        return sorted(inspect(self.engine).get_table_names(schema=self.schema))

    def close(self):
        self.engine.dispose()
        logger.info("Warehouse connection closed")
