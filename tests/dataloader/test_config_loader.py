# tests/dataloader/test_config_loader.py

from pathlib import Path

import pytest
import yaml

from shiftwise.dataloader.config_loader import ConfigLoader
from shiftwise.errors import ConfigError
from shiftwise.schemas.config import Config
from shiftwise.schemas.models import Severity

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def tmp_yaml(tmp_path: Path) -> Path:
    """Writes a partial config.yaml; omitted sections fall back to defaults."""
    path = tmp_path / "config.yaml"
    cfg = {
        "labor_law": {"expiry_warning_days": 14},
        "preference": {"preferred_day_off_severity": "info"},
        "evaluation": {"num_workers": 2},
    }
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f)
    return path


def test_load_valid_yaml_returns_config(tmp_yaml: Path):
    """
    @brief
    Verify that valid YAML is correctly parsed and validated.

    @details
    Given sections override their fields; everything else keeps defaults.
    """
    # --- Arrange ---
    loader = ConfigLoader()

    # --- Act ---
    cfg = loader.load(tmp_yaml)

    # --- Assert ---
    assert isinstance(cfg, Config)
    assert cfg.labor_law.expiry_warning_days == 14
    assert cfg.labor_law.default_max_consecutive_days == 6
    assert cfg.preference.preferred_day_off_severity == Severity.INFO
    assert cfg.evaluation.num_workers == 2
    assert cfg.fairness.workload_ratio == pytest.approx(1.3)


def test_no_path_returns_defaults():
    cfg = ConfigLoader().load(None)
    assert cfg == Config()
    assert cfg.write_report is True


def test_shipped_config_is_valid():
    """
    @brief
    The repository's config/config.yaml must load without errors.
    """
    cfg = ConfigLoader().load(ROOT / "config" / "config.yaml")
    assert cfg.evaluation.num_workers == 4
    assert cfg.simulation.horizon_days == 7


def test_missing_file_raises_configerror(tmp_path: Path):
    """
    @brief
    Missing configuration file triggers ConfigError.
    """
    # --- Arrange ---
    loader = ConfigLoader()
    path = tmp_path / "no_such.yaml"

    # --- Act / Assert ---
    with pytest.raises(ConfigError) as e:
        loader.load(path)

    # --- Assert ---
    assert "Configuration file not found" in str(e.value)


def test_wrong_extension_raises_configerror(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(ConfigError) as e:
        ConfigLoader().load(path)

    assert "Unsupported configuration file extension" in str(e.value)


def test_malformed_yaml_raises_configerror(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("labor_law: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError) as e:
        ConfigLoader().load(path)

    assert "parsing failed" in str(e.value)


@pytest.mark.parametrize(
    "content,fragment",
    [
        ("", "is empty"),
        ("- a\n- b\n", "root must be a mapping"),
        ("unknown_section: {}\n", "Invalid configuration structure"),
        ("evaluation: {num_workers: 0}\n", "Invalid configuration structure"),
        ("fairness: {workload_ratio: 0.5}\n", "Invalid configuration structure"),
    ],
)
def test_invalid_content_raises_configerror(tmp_path: Path, content: str, fragment: str):
    """
    @brief
    Empty documents, non-mapping roots, unknown keys and out-of-range values are rejected.
    """
    # --- Arrange ---
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")

    # --- Act / Assert ---
    with pytest.raises(ConfigError) as e:
        ConfigLoader().load(path)
    assert fragment in str(e.value)
