import pytest

from cleanpipe.exceptions import ConfigurationError
from cleanpipe.utils.config import ConfigManager
from cleanpipe.utils.data_validation import DataValidator
from cleanpipe.utils.logging_config import get_logger, setup_logging


def test_repository_config_is_valid(config_manager):
    assert config_manager.validate_config()
    assert config_manager.list_datasets() == ["layoffs", "orders"]
    assert config_manager.get("pipeline.backfill_policy") == "first"
    assert config_manager.get("pipeline.no_such_key", "fallback") == "fallback"


def test_every_dataset_section_passes_schema(config_manager):
    validator = DataValidator()
    for name in config_manager.list_datasets():
        result = validator.validate_dataset_config(config_manager.get_dataset_config(name))
        assert result["is_valid"], result["errors"]


def test_env_vars_are_substituted(monkeypatch, tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "storage:\n"
        "  warehouse_url: ${WAREHOUSE_URL:sqlite:///default.db}\n"
        "pipeline:\n"
        "  on_malformed: ${ON_MALFORMED:quarantine}\n"
        "datasets: {}\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("WAREHOUSE_URL", "sqlite:///override.db")
    monkeypatch.delenv("ON_MALFORMED", raising=False)

    manager = ConfigManager(str(config_file))
    manager.load_config()

    assert manager.get_storage_config()["warehouse_url"] == "sqlite:///override.db"
    assert manager.get_pipeline_config()["on_malformed"] == "quarantine"


def test_unknown_dataset(config_manager):
    with pytest.raises(ConfigurationError):
        config_manager.get_dataset_config("customers")


def test_missing_section_fails_validation(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("pipeline: {}\n", encoding="utf-8")
    manager = ConfigManager(str(config_file))
    manager.load_config()

    assert not manager.validate_config()


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(str(tmp_path / "missing.yaml")).load_config()


def test_dataset_schema_rejects_unknown_policy():
    result = DataValidator().validate_dataset_config({
        "backfill": [{"field": "industry", "join_key": ["company"], "policy": "latest"}],
    })
    assert not result["is_valid"]
    assert "backfill" in result["errors"]


def test_setup_logging_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "pipeline.log"
    setup_logging({"level": "INFO", "format": "json", "file": str(log_file)})
    get_logger("cleanpipe.tests").info("hello", stage="config")

    assert log_file.exists()
    assert "hello" in log_file.read_text(encoding="utf-8")
