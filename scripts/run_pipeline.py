# Script chạy cleaning pipeline cho một dataset
# usage: python scripts/run_pipeline.py layoffs [data/raw]
import sys

from cleanpipe.ingestion.csv_ingestion import CSVIngestion
from cleanpipe.processing.etl_pipeline import CleaningPipeline
from cleanpipe.utils.config import ConfigManager
from cleanpipe.utils.logging_config import setup_logging

dataset = sys.argv[1] if len(sys.argv) > 1 else "layoffs"
raw_dir = sys.argv[2] if len(sys.argv) > 2 else "data/raw"

# Load config
config_manager = ConfigManager()
config_manager.load_config('config/config.yaml')
setup_logging(config_manager.get_logging_config())

pipeline = CleaningPipeline.from_config(config_manager, dataset)

# Tìm file raw mới nhất của dataset
input_path = CSVIngestion.latest_file(raw_dir, dataset)
print(f"Using input file: {input_path}")

output_path = config_manager.get("storage.snapshot_dir", "output/snapshots")

metadata = pipeline.run_pipeline(input_path=input_path, output_path=output_path)

print("Processing completed successfully!")
print(f"Cleaned snapshot: {metadata['snapshots']['cleaned']}")
print(f"Rows: {metadata['report']['input_rows']} -> {metadata['report']['output_rows']}")
print(f"Quality: {metadata['quality']['status']} ({metadata['quality']['overall_score']:.3f})")
