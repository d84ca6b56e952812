import json

import pytest

from clusterprof.config import Settings, load_settings
from clusterprof.core.exceptions import ConfigurationError


def test_defaults_without_file_or_environment():
    settings = load_settings(environ={})

    assert settings.gateway == "http"
    assert settings.api_prefix == "/api"
    assert settings.chunk_size == 64 * 1024
    assert settings.archive_filename == "profile.zip"
    assert settings.start_timeout is None


def test_yaml_file_is_loaded(tmp_path):
    config_file = tmp_path / "clusterprof.yaml"
    config_file.write_text(
        "gateway: memory\n"
        "memory_nodes: [node1:9000, node2:9000]\n"
        "start_timeout: 20\n"
        "api_prefix: v2/\n",
        encoding="utf-8",
    )

    settings = load_settings(str(config_file), environ={})

    assert settings.gateway == "memory"
    assert settings.memory_nodes == ["node1:9000", "node2:9000"]
    assert settings.start_timeout == 20
    assert settings.api_prefix == "/v2"


def test_environment_overrides_file(tmp_path):
    config_file = tmp_path / "clusterprof.json"
    config_file.write_text(json.dumps({"log_level": "debug", "admin_timeout": 5}), encoding="utf-8")
    environ = {
        "CLUSTERPROF_CONFIG_PATH": str(config_file),
        "CLUSTERPROF_ADMIN_TIMEOUT": "12.5",
        "CLUSTERPROF_CORS_ORIGINS": "https://a.example, https://b.example",
        "CLUSTERPROF_ADMIN_VERIFY_SSL": "false",
    }

    settings = load_settings(environ=environ)

    assert settings.log_level == "DEBUG"
    assert settings.admin_timeout == 12.5
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.admin_verify_ssl is False


def test_missing_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_settings(str(tmp_path / "absent.yaml"), environ={})


def test_unsupported_format_is_rejected(tmp_path):
    config_file = tmp_path / "clusterprof.ini"
    config_file.write_text("[clusterprof]\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Unsupported configuration format"):
        load_settings(str(config_file), environ={})


@pytest.mark.parametrize(
    "environ",
    [
        {"CLUSTERPROF_GATEWAY": "grpc"},
        {"CLUSTERPROF_CHUNK_SIZE": "0"},
        {"CLUSTERPROF_API_PORT": "not-a-port"},
    ],
)
def test_invalid_values_are_configuration_errors(environ):
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_settings(environ=environ)


def test_unknown_keys_are_rejected(tmp_path):
    config_file = tmp_path / "clusterprof.yaml"
    config_file.write_text("admin_endpiont: http://typo\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(str(config_file), environ={})


def test_production_flag():
    assert Settings(environment="production").is_production
    assert not Settings().is_production
