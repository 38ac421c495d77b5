# Tabular cleaning & metrics pipeline

# Takes an already-loaded raw table through four sequential stages:
# - Staging (column names, text values, ingestion order)
# - Deduplication
# - Cleaning & enrichment
# - Metrics derivation (aggregates, windows, funnels, segmentation)

__version__ = "1.0.0"
__author__ = "cleanpipe Data Engineering"
