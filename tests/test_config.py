"""Tests for gsprotocol configuration loading."""

import tempfile
from pathlib import Path

import pytest
import yaml

from gsprotocol.config import GSProtocolConfig, StorageConfig, load_config
from gsprotocol.storage import create_storage_client
from gsprotocol.storage.gcs import GCSStorageClient
from gsprotocol.storage.memory import MemoryStorageClient


def _write_config(data) -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
    return Path(f.name)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_example_config(self):
        """Loading the example config file populates all fields."""
        config = load_config(Path(__file__).resolve().parent.parent / "gsprotocol.example.yaml")
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8080
        assert config.server.log_format == "text"
        assert config.storage.backend == "gcs"
        assert config.storage.gcs_service_file == ""
        assert config.observability.metrics is True

    def test_load_minimal_config(self):
        """Loading an empty YAML document uses defaults for all fields."""
        config = load_config(_write_config({}))
        assert config == GSProtocolConfig()

    def test_custom_server(self):
        config = load_config(_write_config({"server": {"port": 9010, "host": "127.0.0.1"}}))
        assert config.server.port == 9010
        assert config.server.host == "127.0.0.1"
        assert config.server.log_level == "INFO"

    def test_nested_gcs_section(self):
        """storage.gcs.* is flattened onto StorageConfig."""
        config = load_config(
            _write_config(
                {
                    "storage": {
                        "backend": "gcs",
                        "gcs": {
                            "service_file": "/etc/gcs/key.json",
                            "api_root": "http://localhost:4443",
                        },
                    }
                }
            )
        )
        assert config.storage.gcs_service_file == "/etc/gcs/key.json"
        assert config.storage.gcs_api_root == "http://localhost:4443"

    def test_metrics_disabled(self):
        config = load_config(_write_config({"observability": {"metrics": False}}))
        assert config.observability.metrics is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestCreateStorageClient:
    """Tests for create_storage_client()."""

    def test_memory(self):
        client = create_storage_client(StorageConfig(backend="memory"))
        assert isinstance(client, MemoryStorageClient)

    async def test_gcs(self):
        client = create_storage_client(
            StorageConfig(backend="gcs", gcs_api_root="http://localhost:4443")
        )
        assert isinstance(client, GCSStorageClient)
        await client.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage_client(StorageConfig(backend="s3"))
