from spaces_storage.cache import FileCache
from spaces_storage.config import ConfigurationError
from spaces_storage.config import StorageConfig
from spaces_storage.config import default_cache_path
from spaces_storage.config import load_config
from spaces_storage.config import open_file_system
from spaces_storage.s3client import S3Client
from spaces_storage.storage import SpacesFileSystem

import httpx
import io
import pytest


FULL_CONFIG = """\
access-key DO00EXAMPLE
secret-key Sup3rSecretKey
bucket moodle-files
region nyc3
endpoint https://nyc3.digitaloceanspaces.com
cdn-endpoint https://moodle-files.nyc3.cdn.digitaloceanspaces.com
cache-path {cache_path}
cache-max-size 512MB
"""

MINIMAL_CONFIG = """\
access-key DO00EXAMPLE
secret-key Sup3rSecretKey
bucket moodle-files
region nyc3
endpoint https://nyc3.digitaloceanspaces.com
"""


def _settings(**overrides):
    settings = dict(
        access_key="key",
        secret_key="secret",
        bucket="bucket",
        region="nyc3",
        endpoint="https://nyc3.digitaloceanspaces.com",
    )
    settings.update(overrides)
    return settings


class TestStorageConfig:
    def test_defaults(self):
        config = StorageConfig(**_settings())
        assert config.cdn_endpoint == ""
        assert config.cache_path == default_cache_path()
        assert config.cache_max_size == 1024 * 1024 * 1024

    @pytest.mark.parametrize(
        "name", ["access_key", "secret_key", "bucket", "region", "endpoint"]
    )
    @pytest.mark.parametrize("value", ["", None])
    def test_missing_required(self, name, value):
        with pytest.raises(ConfigurationError, match=name):
            StorageConfig(**_settings(**{name: value}))

    def test_endpoint_must_be_url(self):
        with pytest.raises(ConfigurationError, match="endpoint"):
            StorageConfig(**_settings(endpoint="nyc3.digitaloceanspaces.com"))

    def test_cache_max_size_positive(self):
        with pytest.raises(ConfigurationError):
            StorageConfig(**_settings(cache_max_size=0))

    def test_cache_max_size_none_uses_default(self):
        config = StorageConfig(**_settings(cache_max_size=None))
        assert config.cache_max_size == 1024 * 1024 * 1024

    @pytest.mark.parametrize("value", ["big", 1.5, True])
    def test_cache_max_size_must_be_integer(self, value):
        with pytest.raises(ConfigurationError, match="cache_max_size"):
            StorageConfig(**_settings(cache_max_size=value))

    def test_repr_hides_secret(self):
        assert "secret" not in repr(StorageConfig(**_settings()))


class TestLoadConfig:
    def test_all_options(self, tmp_path):
        cache_path = str(tmp_path / "cache")
        config = load_config(io.StringIO(FULL_CONFIG.format(cache_path=cache_path)))

        assert config.access_key == "DO00EXAMPLE"
        assert config.secret_key == "Sup3rSecretKey"
        assert config.bucket == "moodle-files"
        assert config.region == "nyc3"
        assert config.endpoint == "https://nyc3.digitaloceanspaces.com"
        assert config.cdn_endpoint == "https://moodle-files.nyc3.cdn.digitaloceanspaces.com"
        assert config.cache_path == cache_path
        assert config.cache_max_size == 512 * 1024 * 1024

    def test_default_values(self):
        config = load_config(io.StringIO(MINIMAL_CONFIG))
        assert config.cdn_endpoint == ""
        assert config.cache_path == default_cache_path()
        assert config.cache_max_size == 1024 * 1024 * 1024

    def test_missing_required_key(self):
        text = MINIMAL_CONFIG.replace("bucket moodle-files\n", "")
        with pytest.raises(ConfigurationError):
            load_config(io.StringIO(text))

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            load_config(io.StringIO(MINIMAL_CONFIG + "colour blue\n"))


class TestOpenFileSystem:
    def test_wires_components(self, tmp_path):
        config = StorageConfig(
            **_settings(cache_path=str(tmp_path / "cache"), cache_max_size=4096)
        )
        fs = open_file_system(config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        try:
            assert isinstance(fs, SpacesFileSystem)
            assert fs.bucket == "bucket"
            assert isinstance(fs._client, S3Client)
            assert fs._client.endpoint == "https://nyc3.digitaloceanspaces.com"
            assert isinstance(fs._cache, FileCache)
            assert fs._cache.max_size == 4096
            assert fs._cache.target_size == 3276
            assert fs.exists("a" * 40) is True
        finally:
            fs.close()
