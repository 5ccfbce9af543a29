from spaces_storage.cache import shard_path
from spaces_storage.cache import validate_contenthash
from spaces_storage.interfaces import IFileSystem
from spaces_storage.s3client import TransportError
from zope.interface import implementer

import contextlib
import logging
import os
import shutil
import tempfile


logger = logging.getLogger(__name__)


class StorageResult:
    """Outcome of a store or delete. Truthy when the operation succeeded."""

    __slots__ = ("ok", "message")

    def __init__(self, ok, message=""):
        self.ok = ok
        self.message = message

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return f"<StorageResult ok={self.ok} message={self.message!r}>"


@implementer(IFileSystem)
class SpacesFileSystem:
    """Content-addressed file storage backed by an object store.

    Uploads go to the object store first and are then seeded into the
    local cache. Reads are served from the cache and, on a miss, downloaded
    straight into the cache path. Remote failures never propagate: they are
    logged and reported as a failed result or a miss.
    """

    def __init__(self, client, cache, bucket, temp_dir=None):
        self._client = client
        self._cache = cache
        self.bucket = bucket
        self._temp_dir = temp_dir or tempfile.mkdtemp()
        os.makedirs(self._temp_dir, exist_ok=True, mode=0o700)

    def __repr__(self):
        return f"<SpacesFileSystem bucket={self.bucket!r} cache={self._cache.cache_dir!r}>"

    @staticmethod
    def get_remote_key(contenthash):
        return shard_path(contenthash)

    # -- Write path --

    def store(self, contenthash, source):
        """Store ``source`` (bytes, or a path to a local file) under a hash."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            return self.store_bytes(contenthash, source)
        return self.store_file(contenthash, os.fspath(source))

    def store_file(self, contenthash, pathname):
        key = self.get_remote_key(contenthash)
        try:
            self._client.put_object(self.bucket, key, pathname)
        except (TransportError, OSError) as e:
            logger.warning("Failed to upload %s: %s", contenthash, e, exc_info=True)
            return StorageResult(False, str(e))

        # Remote is authoritative; a failed local copy only costs a later download.
        if not self._cache.add(contenthash, pathname):
            logger.warning("Uploaded %s but could not seed the local cache", contenthash)
        return StorageResult(True)

    def store_bytes(self, contenthash, content):
        validate_contenthash(contenthash)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._temp_dir, suffix=".upload")
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.warning("Failed to stage %s for upload", contenthash, exc_info=True)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.remove(tmp_path)
            return StorageResult(False, str(e))
        try:
            return self.store_file(contenthash, tmp_path)
        finally:
            with contextlib.suppress(OSError):
                os.remove(tmp_path)

    # -- Read path --

    def fetch(self, contenthash, fetch_if_missing=False):
        """Return a local path for the hash, or None on a miss."""
        cached = self._cache.get(contenthash)
        if cached is not None:
            return cached
        if not fetch_if_missing:
            return None

        key = self.get_remote_key(contenthash)
        local_path = self._cache.get_cache_path(contenthash)
        try:
            self._client.get_object(self.bucket, key, local_path)
        except (TransportError, OSError) as e:
            logger.warning("Failed to download %s: %s", contenthash, e, exc_info=True)
            return None

        self._cache.add(contenthash, local_path)
        # Eviction may have dropped the entry if it alone exceeds max_size.
        if not os.path.isfile(local_path):
            logger.warning("Downloaded %s was evicted immediately", contenthash)
            return None
        return local_path

    def read(self, contenthash):
        path = self.fetch(contenthash, fetch_if_missing=True)
        if path is None:
            return None
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError:
            logger.warning("Cached file for %s vanished while reading", contenthash)
            return None

    def exists(self, contenthash):
        return self._client.head_object(self.bucket, self.get_remote_key(contenthash))

    # -- Delete --

    def delete(self, contenthash):
        key = self.get_remote_key(contenthash)
        try:
            self._client.delete_object(self.bucket, key)
        except (TransportError, OSError) as e:
            logger.warning("Failed to delete %s: %s", contenthash, e, exc_info=True)
            return StorageResult(False, str(e))
        self._cache.remove(contenthash)
        return StorageResult(True)

    def close(self):
        close_client = getattr(self._client, "close", None)
        if close_client is not None:
            close_client()
        with contextlib.suppress(OSError):
            shutil.rmtree(self._temp_dir)
