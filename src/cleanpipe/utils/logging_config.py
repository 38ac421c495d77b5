# thiết lập nhật ký cho cả quy trình
# dùng cho staging, cleaning, metrics, storage và CLI
import logging
import sys
from pathlib import Path
from typing import Dict, Any, Optional
import structlog


# Hàm thiết lập logging
def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    if config is None:
        config = {
            "level": "INFO",
            "format": "json",
            "file": "logs/pipeline.log"
        }

    # Configure structlog, rendering is left to the stdlib formatter below
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    log_level = getattr(logging, str(config.get("level", "INFO")).upper())
    # Lấy format từ config, nếu không có thì sử dụng json
    log_format = config.get("format", "json")

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    log_file = config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    # Trả về logger dạng structured (structlog) theo tên "name"
    return structlog.get_logger(name)


class PipelineLogger:
    # Logger tuỳ biến cho các stage của pipeline (staging, dedup, cleaning, metrics)

    def __init__(self, name: str):
        self.logger = get_logger(name)

    def log_ingestion_complete(self, source: str, rows: int, duration: float):
        self.logger.info(
            "Data ingestion completed",
            source=source,
            rows=rows,
            duration_seconds=duration,
            operation="ingestion_complete"
        )

    def log_processing_start(self, stage: str, rows: int):
        self.logger.info(
            "Data processing started",
            stage=stage,
            input_rows=rows,
            operation="processing_start"
        )

    def log_processing_complete(self, stage: str, input_rows: int, output_rows: int, duration: float, **counts: Any):
        # Ghi log hoàn thành stage (số dòng vào/ra, thời gian, các bộ đếm của stage)
        self.logger.info(
            "Data processing completed",
            stage=stage,
            input_rows=input_rows,
            output_rows=output_rows,
            duration_seconds=duration,
            operation="processing_complete",
            **counts
        )

    def log_view_computed(self, view: str, rows: int, duration: float):
        self.logger.info(
            "Metric view computed",
            view=view,
            rows=rows,
            duration_seconds=duration,
            operation="view_computed"
        )

    def log_error(self, operation: str, error: str, context: Optional[Dict[str, Any]] = None):
        self.logger.error(
            "Operation failed",
            operation=operation,
            error=error,
            context=context or {},
            operation_type="error"
        )

    def log_data_quality_issue(self, check_name: str, issue: str, affected_rows: int):
        self.logger.warning(
            "Data quality issue detected",
            check_name=check_name,
            issue=issue,
            affected_rows=affected_rows,
            operation="data_quality_issue"
        )
