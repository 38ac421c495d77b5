# Main cleaning pipeline
# stage -> dedup -> blanks -> categorical -> patches -> backfill -> required
#       -> coerce -> essential -> features -> version tag
import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Callable, List, Optional, Tuple

import pandas as pd

from .. import __version__
from ..exceptions import ConfigurationError, MalformedFieldError, PipelineError
from ..ingestion.csv_ingestion import CSVIngestion
from ..ingestion.staging import ROW_NUMBER_COLUMN, stage_table
from ..metrics.engine import MetricsEngine
from ..storage.snapshot_store import SnapshotStore
from ..storage.warehouse import ViewWarehouse
from ..utils.config import DEFAULT_CONFIG_PATH, ConfigManager
from ..utils.data_validation import DataValidator
from ..utils.logging_config import PipelineLogger, get_logger, setup_logging
from .cleaning import (
    BlankNormalizer,
    CategoricalStandardizer,
    CrossRecordBackfill,
    EssentialFieldFilter,
    RequiredFieldFilter,
    TypeCoercer,
    ValuePatch,
)
from .data_quality import DataQualityChecker
from .deduplication import Deduplicator
from .feature_engineering import FeatureEngineer

logger = get_logger(__name__)

VERSION_COLUMN = "_processing_version"


@dataclass
class RunReport:
    # bộ đếm theo từng stage, luôn có trong kết quả để kiểm toán
    dataset: str
    input_rows: int = 0
    duplicates_removed: int = 0
    blanks_normalized: int = 0
    categories_standardized: int = 0
    unresolved_categories: Dict[str, List[str]] = field(default_factory=dict)
    rows_patched: int = 0
    rows_backfilled: int = 0
    backfill_conflicts: int = 0
    required_missing_dropped: int = 0
    malformed_rows: int = 0
    essential_missing_dropped: int = 0
    output_rows: int = 0
    dedup_order_defined: bool = True
    stage_durations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineResult:
    cleaned: pd.DataFrame
    rejected: pd.DataFrame
    errors: List[MalformedFieldError]
    report: RunReport
    quality: Dict[str, Any]


class CleaningPipeline:

    def __init__(
        self,
        dataset_config: Dict[str, Any],
        pipeline_config: Optional[Dict[str, Any]] = None,
        storage_config: Optional[Dict[str, Any]] = None,
        dataset_name: str = "dataset",
    ):
        self.validator = DataValidator()
        validation = self.validator.validate_dataset_config(dataset_config)
        if not validation["is_valid"]:
            raise ConfigurationError(
                f"Invalid configuration for dataset '{dataset_name}'", errors=validation["errors"]
            )

        self.dataset_name = dataset_name
        self.dataset_config = dataset_config
        self.pipeline_config = pipeline_config or {}
        self.storage_config = storage_config or {}
        self.pipeline_logger = PipelineLogger(__name__)
        self.processing_timestamp = datetime.now().isoformat()
        self.version = str(self.pipeline_config.get("processing_version", __version__))

        dedup = dataset_config.get("dedup") or {}
        self.deduplicator = Deduplicator(dedup.get("key"), dedup.get("order_by", ROW_NUMBER_COLUMN))

        blank = dataset_config.get("blank") or {}
        self.blank_normalizer = BlankNormalizer(blank.get("fields"), blank.get("tokens", ("",)))

        self.standardizers = [
            CategoricalStandardizer(
                rule["field"],
                rule.get("mapping"),
                rule.get("prefixes"),
                rule.get("known"),
                rule.get("strip_chars"),
            )
            for rule in dataset_config.get("categorical") or []
        ]
        self.patches = [ValuePatch(rule["match"], rule["set"]) for rule in dataset_config.get("patches") or []]

        default_policy = self.pipeline_config.get("backfill_policy", "first")
        self.backfills = [
            CrossRecordBackfill(rule["field"], rule["join_key"], rule.get("policy", default_policy))
            for rule in dataset_config.get("backfill") or []
        ]

        required = dataset_config.get("required") or []
        self.required_filter = RequiredFieldFilter(required) if required else None
        self.coercer = TypeCoercer(
            dataset_config.get("coerce") or {},
            on_error=self.pipeline_config.get("on_malformed", "quarantine"),
        )
        essential = dataset_config.get("essential") or []
        self.essential_filter = EssentialFieldFilter(essential) if essential else None
        self.feature_engineer = FeatureEngineer.from_config(dataset_config.get("features") or [])
        self.quality_checker = DataQualityChecker(self.pipeline_config.get("quality_threshold", 0.8))

    @classmethod
    def from_config(cls, config_manager: ConfigManager, dataset: str) -> "CleaningPipeline":
        return cls(
            config_manager.get_dataset_config(dataset),
            config_manager.get_pipeline_config(),
            config_manager.get_storage_config(),
            dataset_name=dataset,
        )

    # numeric fields checked by the quality report: declared, or every integer/decimal coercion
    @property
    def numeric_fields(self) -> List[str]:
        declared = self.dataset_config.get("numeric_fields")
        if declared:
            return list(declared)
        return [
            name for name, spec in (self.dataset_config.get("coerce") or {}).items()
            if spec.get("type") in ("integer", "decimal")
        ]

    # columns the configured rules read; all must exist once the table is staged
    @property
    def input_columns(self) -> List[str]:
        columns = list(self.deduplicator.key or [])
        columns += [standardizer.field for standardizer in self.standardizers]
        for patch in self.patches:
            columns += list(patch.match)
        for backfill in self.backfills:
            columns += [backfill.field] + list(backfill.join_key)
        columns += self.required_filter.fields if self.required_filter is not None else []
        columns += list(self.coercer.fields)
        columns += self.essential_filter.fields if self.essential_filter is not None else []
        return list(dict.fromkeys(columns))

    def _run_stage(
        self,
        stage: str,
        df: pd.DataFrame,
        func: Callable[[pd.DataFrame], Tuple[pd.DataFrame, Dict[str, Any]]],
        report: RunReport,
    ) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        self.pipeline_logger.log_processing_start(stage, len(df))
        started = time.perf_counter()
        result, stats = func(df)
        duration = round(time.perf_counter() - started, 4)
        report.stage_durations[stage] = round(report.stage_durations.get(stage, 0.0) + duration, 4)
        counts = {k: v for k, v in stats.items() if isinstance(v, int)}
        self.pipeline_logger.log_processing_complete(stage, len(df), len(result), duration, **counts)
        return result, stats

    # run the cleaning stages over a raw (unstaged) table
    def run(self, raw_df: pd.DataFrame) -> PipelineResult:
        report = RunReport(dataset=self.dataset_name, input_rows=len(raw_df))

        try:
            df, _ = self._run_stage(
                "staging", raw_df,
                lambda frame: (
                    stage_table(frame, self.dataset_config.get("rename"), self.dataset_config.get("drop")),
                    {},
                ),
                report,
            )

            completeness = self.validator.validate_data_completeness(df, self.input_columns)
            if not completeness["is_valid"]:
                raise PipelineError(
                    f"Staged table lacks columns used by the cleaning rules: {completeness['missing_columns']}"
                )

            def dedup(frame: pd.DataFrame):
                deduped, result = self.deduplicator.apply(frame)
                return deduped, {"duplicates_removed": result.removed, "order_defined": result.order_defined}

            df, stats = self._run_stage("deduplication", df, dedup, report)
            report.duplicates_removed = stats["duplicates_removed"]
            report.dedup_order_defined = stats["order_defined"]
            dedup_key = self.deduplicator.resolve_key(df)

            df, stats = self._run_stage("blank_normalization", df, self.blank_normalizer.apply, report)
            report.blanks_normalized = stats["blanks_normalized"]

            for standardizer in self.standardizers:
                df, stats = self._run_stage(f"categorical:{standardizer.field}", df, standardizer.apply, report)
                report.categories_standardized += stats["categories_standardized"]
                if stats["unresolved_categories"]:
                    report.unresolved_categories[standardizer.field] = stats["unresolved_categories"]

            for patch in self.patches:
                df, stats = self._run_stage("value_patch", df, patch.apply, report)
                report.rows_patched += stats["rows_patched"]

            for backfill in self.backfills:
                df, stats = self._run_stage(f"backfill:{backfill.field}", df, backfill.apply, report)
                report.rows_backfilled += stats["rows_backfilled"]
                report.backfill_conflicts += stats["backfill_conflicts"]

            if self.required_filter is not None:
                df, stats = self._run_stage("required_fields", df, self.required_filter.apply, report)
                report.required_missing_dropped = stats["required_missing_dropped"]

            rejected = pd.DataFrame(columns=df.columns)
            errors: List[MalformedFieldError] = []

            def coerce(frame: pd.DataFrame):
                nonlocal rejected, errors
                coerced, rejected, errors = self.coercer.apply(frame)
                return coerced, {"malformed_rows": len(rejected)}

            df, stats = self._run_stage("type_coercion", df, coerce, report)
            report.malformed_rows = stats["malformed_rows"]

            if self.essential_filter is not None:
                df, stats = self._run_stage("essential_fields", df, self.essential_filter.apply, report)
                report.essential_missing_dropped = stats["essential_missing_dropped"]

            df, _ = self._run_stage(
                "feature_engineering", df,
                lambda frame: (self.feature_engineer.engineer_features(frame), {}),
                report,
            )

            # version tag only, no timestamp: reruns on the same raw input stay identical
            df = df.copy()
            df[VERSION_COLUMN] = self.version
            report.output_rows = len(df)

            quality = self.quality_checker.check_data_quality(df, key=dedup_key, numeric_fields=self.numeric_fields)

        except PipelineError as e:
            self.pipeline_logger.log_error("cleaning_pipeline", str(e), {"dataset": self.dataset_name})
            raise

        logger.info(
            f"Cleaning completed: {report.input_rows} -> {report.output_rows} rows",
            dataset=self.dataset_name,
            duplicates_removed=report.duplicates_removed,
            malformed_rows=report.malformed_rows,
        )
        return PipelineResult(df, rejected, errors, report, quality)

    #  run the full pipeline: read -> clean -> views -> persist
    def run_pipeline(
        self,
        input_path: str,
        output_path: str,
        views: Optional[List[str]] = None,
        write_warehouse: bool = True,
    ) -> Dict[str, Any]:
        try:
            logger.info(f"Starting pipeline for dataset '{self.dataset_name}' from {input_path}")

            # bước 1: Extract
            raw_df = CSVIngestion(self.pipeline_config.get("ingestion")).read(input_path)

            # bước 2: Transform
            result = self.run(raw_df)

            # bước 3: Metrics
            view_names = views if views is not None else self.dataset_config.get("views")
            view_frames = MetricsEngine().compute(result.cleaned, names=view_names, dataset=self.dataset_name)

            # bước 4: Load
            store = SnapshotStore(output_path, self.storage_config.get("compression", "snappy"))
            snapshots = {"cleaned": store.write(result.cleaned, f"{self.dataset_name}_cleaned")}
            if not result.rejected.empty:
                snapshots["rejected"] = store.write(result.rejected, f"{self.dataset_name}_rejected")
            snapshots.update(store.write_many(view_frames, prefix="views"))

            tables = {}
            if write_warehouse and self.storage_config.get("warehouse_url"):
                warehouse = ViewWarehouse.from_config(self.storage_config)
                try:
                    tables[f"{self.dataset_name}_cleaned"] = warehouse.write_table(
                        result.cleaned, f"{self.dataset_name}_cleaned"
                    )
                    tables.update(warehouse.write_views(view_frames, prefix=f"{self.dataset_name}_"))
                finally:
                    warehouse.close()

            metadata = self._generate_metadata(result, input_path, output_path, view_frames, snapshots, tables)
            report_path = Path(output_path) / f"{self.dataset_name}_run_report.json"
            with open(report_path, "w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2, default=str)

            logger.info("Pipeline completed successfully", dataset=self.dataset_name, views=len(view_frames))
            return metadata

        except Exception as e:
            logger.error(f"Pipeline failed: {str(e)}")
            raise

    # tạo metadata về quá trình xử lý dữ liệu
    def _generate_metadata(
        self,
        result: PipelineResult,
        input_path: str,
        output_path: str,
        view_frames: Dict[str, pd.DataFrame],
        snapshots: Dict[str, str],
        tables: Dict[str, int],
    ) -> Dict[str, Any]:
        return {
            "dataset": self.dataset_name,
            "processing_version": self.version,
            "processing_timestamp": self.processing_timestamp,
            "input_file": input_path,
            "output_dir": output_path,
            "report": result.report.to_dict(),
            "quality": {
                "overall_score": result.quality["overall_score"],
                "status": result.quality["status"],
            },
            "malformed_fields": [error.to_dict() for error in result.errors],
            "views": {name: len(df) for name, df in view_frames.items()},
            "snapshots": snapshots,
            "warehouse_tables": tables,
            "status": "success",
        }


def main(argv: Optional[List[str]] = None):
    import argparse

    parser = argparse.ArgumentParser(description="Cleaning & metrics pipeline")
    parser.add_argument("--dataset", required=True, help="Dataset section in the configuration")
    parser.add_argument("--input", required=True, help="Raw CSV / Parquet file")
    parser.add_argument("--output", required=True, help="Output directory for snapshots")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file")
    parser.add_argument("--views", nargs="*", help="Views to compute (default: the dataset's views)")
    parser.add_argument("--no-warehouse", action="store_true", help="Skip writing to the SQL warehouse")

    args = parser.parse_args(argv)

    # Load configuration
    config_manager = ConfigManager(args.config)
    config_manager.load_config()
    setup_logging(config_manager.get_logging_config())
    if not config_manager.validate_config():
        raise SystemExit(f"Invalid configuration: {args.config}")

    pipeline = CleaningPipeline.from_config(config_manager, args.dataset)
    metadata = pipeline.run_pipeline(
        input_path=args.input,
        output_path=args.output,
        views=args.views,
        write_warehouse=not args.no_warehouse,
    )

    report = metadata["report"]
    print(f"Pipeline completed for dataset '{args.dataset}'")
    print(f"Rows: {report['input_rows']} -> {report['output_rows']} "
          f"(duplicates removed: {report['duplicates_removed']}, malformed: {report['malformed_rows']})")
    print(f"Views: {', '.join(metadata['views'])}")


if __name__ == "__main__":
    main()
