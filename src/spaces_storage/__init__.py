from spaces_storage.cache import FileCache
from spaces_storage.config import ConfigurationError
from spaces_storage.config import StorageConfig
from spaces_storage.config import load_config
from spaces_storage.config import open_file_system
from spaces_storage.s3client import S3Client
from spaces_storage.s3client import TransportError
from spaces_storage.signing import RequestSigner
from spaces_storage.storage import SpacesFileSystem
from spaces_storage.storage import StorageResult


__all__ = [
    "ConfigurationError",
    "FileCache",
    "RequestSigner",
    "S3Client",
    "SpacesFileSystem",
    "StorageConfig",
    "StorageResult",
    "TransportError",
    "load_config",
    "open_file_system",
]
