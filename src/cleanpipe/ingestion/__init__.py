# Ingestion & Normalization - stage 1

# - Reading raw CSV / Parquet files (thin helper)
# - Staging: canonical column names, text values, ingestion order

from .csv_ingestion import CSVIngestion
from .staging import ROW_NUMBER_COLUMN, data_columns, stage_table

__all__ = ["CSVIngestion", "ROW_NUMBER_COLUMN", "data_columns", "stage_table"]
