# modun quản lý cấu hình
# load YAML -> cho tất cả module
# dataset sections describe the cleaning rules and metric views of one dataset
import os
import re
from typing import Dict, Any, List, Optional

import yaml

from ..exceptions import ConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"


# configmanager cho pipeline
class ConfigManager:

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = config_path
        self.config = None

    # Hàm tải cấu hình từ file YAML, có hỗ trợ thay biến môi trường dạng ${VAR}
    def load_config(self, config_path: Optional[str] = None) -> Dict[str, Any]:
        if config_path:
            self.config_path = config_path

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config_content = self._substitute_env_vars(file.read())
                self.config = yaml.safe_load(config_content) or {}

            logger.info(f"Configuration loaded from {self.config_path}")
            return self.config

        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_path}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration: {e}")
            raise

    # Hàm thay thế biến môi trường trong nội dung YAML (ví dụ ${WAREHOUSE_URL:sqlite:///out.db})
    def _substitute_env_vars(self, content: str) -> str:
        # Pattern to match ${VAR_NAME} or ${VAR_NAME:default_value}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replace_env_var(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replace_env_var, content)

    # Hàm truy xuất giá trị cấu hình theo key chấm (vd: "pipeline.on_malformed")
    def get(self, key: str, default: Any = None) -> Any:
        if self.config is None:
            self.load_config()

        value = self.config
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def list_datasets(self) -> List[str]:
        return sorted(self.get("datasets", {}) or {})

    # Hàm lấy cấu hình của một dataset (rename, dedup, rules, views)
    def get_dataset_config(self, name: str) -> Dict[str, Any]:
        dataset = self.get(f"datasets.{name}")
        if dataset is None:
            raise ConfigurationError(
                f"Unknown dataset '{name}'; configured datasets: {self.list_datasets()}"
            )
        return dataset

    def get_pipeline_config(self) -> Dict[str, Any]:
        return self.get("pipeline", {}) or {}

    def get_storage_config(self) -> Dict[str, Any]:
        return self.get("storage", {}) or {}

    def get_logging_config(self) -> Dict[str, Any]:
        return self.get("logging", {}) or {}

    # Hàm kiểm tra file cấu hình đã đủ các mục bắt buộc chưa
    def validate_config(self) -> bool:
        if self.config is None:
            logger.error("Configuration not loaded")
            return False

        for section in ["pipeline", "storage", "datasets"]:
            if section not in self.config:
                logger.error(f"Missing required configuration section: {section}")
                return False

        logger.info("Configuration validation passed")
        return True
