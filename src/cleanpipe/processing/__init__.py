# Data Processing Layer - stages 2 and 3

# This module handles deduplication, cleaning and enrichment:
# - Exact-duplicate removal (first occurrence kept)
# - Blank normalization, categorical standardization, value patches
# - Cross-record backfill and type coercion with row filters
# - Derived features and a data quality report

# CleaningPipeline runs the stages in a fixed order and reports counts per stage.

from .etl_pipeline import CleaningPipeline, PipelineResult, RunReport

__all__ = ["CleaningPipeline", "PipelineResult", "RunReport"]
