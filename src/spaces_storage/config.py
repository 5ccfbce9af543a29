from spaces_storage.cache import DEFAULT_MAX_SIZE

import os
import tempfile
import ZConfig


REQUIRED_SETTINGS = ("access_key", "secret_key", "bucket", "region", "endpoint")

_SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.xml")
_schema = None


class ConfigurationError(Exception):
    """A required setting is missing or the configuration cannot be parsed."""


def default_cache_path():
    return os.path.join(tempfile.gettempdir(), "spacescache")


class StorageConfig:
    """Settings for the object store and the local cache."""

    def __init__(
        self,
        access_key,
        secret_key,
        bucket,
        region,
        endpoint,
        cdn_endpoint="",
        cache_path=None,
        cache_max_size=DEFAULT_MAX_SIZE,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket = bucket
        self.region = region
        self.endpoint = endpoint
        self.cdn_endpoint = cdn_endpoint or ""
        self.cache_path = cache_path or default_cache_path()
        self.cache_max_size = (
            DEFAULT_MAX_SIZE if cache_max_size is None else cache_max_size
        )

        for name in REQUIRED_SETTINGS:
            if not getattr(self, name):
                raise ConfigurationError(f"Missing required setting: {name}")
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"endpoint must be an http(s) URL, got {self.endpoint!r}"
            )
        if (
            not isinstance(self.cache_max_size, int)
            or isinstance(self.cache_max_size, bool)
            or self.cache_max_size <= 0
        ):
            raise ConfigurationError(
                f"cache_max_size must be a positive integer, got {self.cache_max_size!r}"
            )

    def __repr__(self):
        return (
            f"<StorageConfig bucket={self.bucket!r} region={self.region!r} "
            f"endpoint={self.endpoint!r} cache_path={self.cache_path!r}>"
        )

    @classmethod
    def from_section(cls, section):
        """Build from a parsed ZConfig section."""
        return cls(
            access_key=section.access_key,
            secret_key=section.secret_key,
            bucket=section.bucket,
            region=section.region,
            endpoint=section.endpoint,
            cdn_endpoint=section.cdn_endpoint,
            cache_path=section.cache_path,
            cache_max_size=section.cache_max_size,
        )


def get_schema():
    global _schema
    if _schema is None:
        with open(_SCHEMA_PATH) as f:
            _schema = ZConfig.loadSchemaFile(f)
    return _schema


def load_config(fp):
    """Parse a ZConfig file object into a StorageConfig."""
    try:
        section, _handler = ZConfig.loadConfigFile(get_schema(), fp)
    except ZConfig.ConfigurationError as e:
        raise ConfigurationError(str(e)) from e
    return StorageConfig.from_section(section)


def open_file_system(config, transport=None):
    """Wire the object client, cache and file system for a config."""
    from spaces_storage.cache import FileCache
    from spaces_storage.s3client import S3Client
    from spaces_storage.storage import SpacesFileSystem

    client = S3Client(
        access_key=config.access_key,
        secret_key=config.secret_key,
        region=config.region,
        endpoint=config.endpoint,
        cdn_endpoint=config.cdn_endpoint,
        transport=transport,
    )
    cache = FileCache(
        cache_dir=config.cache_path,
        max_size=config.cache_max_size,
    )
    return SpacesFileSystem(client, cache, config.bucket)
