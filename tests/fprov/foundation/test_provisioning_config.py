from pathlib import Path
import json
import logging
import pytest
import yaml

from fprov.foundation.config import (
    ProvisioningConfig,
    apply_env_overrides,
    find_config_file,
    load_provisioning_config,
)


def test_load_provisioning_config_yaml(tmp_path: Path) -> None:
    data = {
        "repositories": ["mvn:org.example/features/1.0/xml/features"],
        "boot_features": "web",
        "state_file": str(tmp_path / "state.json"),
        "allow_side_by_side": True,
        "http_timeout_seconds": 2.5,
    }
    config_file = tmp_path / "fprov.yml"
    config_file.write_text(yaml.safe_dump(data))
    config = load_provisioning_config(str(config_file), environ={})
    assert config.repositories == data["repositories"]
    assert config.boot_features == ["web"]
    assert config.state_file == data["state_file"]
    assert config.allow_side_by_side is True
    assert config.http_timeout_seconds == 2.5
    assert config.admin_roles == ["admin"]


def test_load_provisioning_config_section_json(tmp_path: Path) -> None:
    config_file = tmp_path / "fprov.json"
    config_file.write_text(json.dumps({"provisioning": {"admin_roles": ["ops", "root"]}}))
    config = load_provisioning_config(str(config_file), environ={})
    assert config.admin_roles == ["ops", "root"]


def test_load_provisioning_config_defaults() -> None:
    config = load_provisioning_config(environ={})
    assert config == ProvisioningConfig()
    assert config.retain_uninstalled_records is True


def test_load_provisioning_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_provisioning_config("nope.yml", environ={})


def test_load_provisioning_config_malformed(tmp_path: Path):
    p = tmp_path / "bad.yml"
    p.write_text("- 1")
    with pytest.raises(TypeError):
        load_provisioning_config(str(p), environ={})


def test_load_provisioning_config_invalid_yaml(tmp_path: Path):
    p = tmp_path / "broken.yml"
    p.write_text("repositories: [unclosed")
    with pytest.raises(ValueError):
        load_provisioning_config(str(p), environ={})


def test_load_provisioning_config_bad_list(tmp_path: Path):
    p = tmp_path / "fprov.yml"
    p.write_text("repositories: 3")
    with pytest.raises(TypeError):
        load_provisioning_config(str(p), environ={})


def test_unknown_keys_warn(tmp_path: Path, caplog):
    p = tmp_path / "fprov.yml"
    p.write_text("auto_refresh: false\nredis_dsn: redis://x\n")
    with caplog.at_level(logging.WARNING, logger="fprov.foundation.config"):
        config = load_provisioning_config(str(p), environ={})
    assert config.auto_refresh is False
    assert "redis_dsn" in caplog.text


def test_env_overrides(tmp_path: Path):
    p = tmp_path / "fprov.yml"
    p.write_text("auto_refresh: true\n")
    env = {
        "FPROV_AUTO_REFRESH": "off",
        "FPROV_REPOSITORIES": "file:a.yml, file:b.yml,",
        "FPROV_HTTP_TIMEOUT": "3",
        "FPROV_STATE_FILE": "",
    }
    config = load_provisioning_config(str(p), environ=env)
    assert config.auto_refresh is False
    assert config.repositories == ["file:a.yml", "file:b.yml"]
    assert config.http_timeout_seconds == 3.0
    assert config.state_file is None


def test_env_override_rejects_bad_boolean():
    with pytest.raises(ValueError):
        apply_env_overrides(ProvisioningConfig(), {"FPROV_ALLOW_SIDE_BY_SIDE": "maybe"})


def test_find_config_file(tmp_path: Path):
    assert find_config_file(tmp_path) is None
    (tmp_path / "fprov.yaml").write_text("{}")
    assert find_config_file(tmp_path) == str(tmp_path / "fprov.yaml")
    (tmp_path / "fprov.yml").write_text("{}")
    assert find_config_file(tmp_path) == str(tmp_path / "fprov.yml")
