from zope.interface import Attribute
from zope.interface import Interface


class IRequestSigner(Interface):
    """Signs requests for an S3-compatible endpoint."""

    def sign(method, bucket, key, headers, timestamp=None):
        """Add Host and x-amz-date to headers and return the Authorization value."""


class IObjectClient(Interface):
    """Abstraction over S3-compatible object storage."""

    def put_object(bucket, key, local_path):
        """Upload a local file. Raises TransportError on failure."""

    def get_object(bucket, key, local_path):
        """Download an object to a local file (atomic via temp+rename)."""

    def head_object(bucket, key):
        """Return True if the object exists. Never raises."""

    def delete_object(bucket, key):
        """Delete an object. Raises TransportError on failure."""


class IFileCache(Interface):
    """Local filesystem LRU cache keyed by content hash."""

    max_size = Attribute("Byte ceiling for the cache directory")

    def get_cache_path(contenthash):
        """Return the sharded path for a hash without touching disk."""

    def get(contenthash):
        """Return cached file path or None, refreshing its access time."""

    def add(contenthash, source_path):
        """Copy source file into cache and evict if needed."""

    def remove(contenthash):
        """Remove a cached file; missing files count as removed."""

    def size():
        """Return total bytes held in the cache."""

    def clear():
        """Remove every cached file."""


class IFileSystem(Interface):
    """Content-addressed file storage exposed to the host application."""

    def store(contenthash, source):
        """Persist bytes or a file path under a hash."""

    def fetch(contenthash, fetch_if_missing=False):
        """Return a local path for a hash or None."""

    def exists(contenthash):
        """Return True if the remote store holds the hash."""

    def delete(contenthash):
        """Delete a hash remotely and from the cache."""
