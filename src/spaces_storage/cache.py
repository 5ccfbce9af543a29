from spaces_storage.interfaces import IFileCache
from zope.interface import implementer

import contextlib
import logging
import os
import re
import shutil
import tempfile


logger = logging.getLogger(__name__)

INDEX_FILENAME = ".cacheindex"
DEFAULT_MAX_SIZE = 1024 * 1024 * 1024
# Eviction stops once the cache is back under this share of max_size.
DEFAULT_TARGET_RATIO = 0.8

_CONTENTHASH_RE = re.compile(r"^[0-9a-f]{40}$")


def validate_contenthash(contenthash):
    if not isinstance(contenthash, str) or not _CONTENTHASH_RE.match(contenthash):
        raise ValueError(f"Invalid content hash: {contenthash!r}")
    return contenthash


def shard_path(contenthash):
    """Return the relative path 'ab/cd/abcd...' for a content hash."""
    validate_contenthash(contenthash)
    return f"{contenthash[0:2]}/{contenthash[2:4]}/{contenthash}"


@implementer(IFileCache)
class FileCache:
    """Local filesystem LRU cache for content-addressed files.

    Files are stored as {cache_dir}/{h[0:2]}/{h[2:4]}/{h}. There is no
    separate index: sizes and recency are read from the filesystem, and
    access time is the LRU signal. Eviction runs synchronously after every
    add and removes oldest files until the cache is below
    ``target_ratio * max_size``.
    """

    def __init__(
        self, cache_dir, max_size=DEFAULT_MAX_SIZE, target_ratio=DEFAULT_TARGET_RATIO
    ):
        if not 0 < target_ratio <= 1:
            raise ValueError(f"target_ratio must be in (0, 1], got {target_ratio}")
        self.cache_dir = os.path.abspath(cache_dir)
        self.max_size = max_size
        self.target_ratio = target_ratio
        os.makedirs(self.cache_dir, exist_ok=True)

    @property
    def target_size(self):
        return int(self.max_size * self.target_ratio)

    def get_cache_path(self, contenthash):
        return os.path.join(self.cache_dir, *shard_path(contenthash).split("/"))

    def get(self, contenthash):
        path = self.get_cache_path(contenthash)
        if not os.path.isfile(path):
            return None
        try:
            # Reads are the only recency update.
            os.utime(path)
        except FileNotFoundError:
            return None
        except OSError:
            # Readable but not ours to touch; still a hit.
            logger.debug("Could not refresh access time of %s", path, exc_info=True)
        return path

    def add(self, contenthash, source_path):
        path = self.get_cache_path(contenthash)
        target_dir = os.path.dirname(path)
        try:
            os.makedirs(target_dir, exist_ok=True)
        except OSError:
            logger.warning("Could not create cache directory %s", target_dir, exc_info=True)

        if os.path.abspath(source_path) != path:
            if not self._copy_into_place(source_path, path):
                return False

        self.evict_if_needed()
        return True

    def _copy_into_place(self, source_path, path):
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix=".tmp")
            os.close(fd)
            # copyfile, not copy2: the new entry's atime must be "now".
            shutil.copyfile(source_path, tmp_path)
            os.replace(tmp_path, path)
        except OSError:
            logger.warning(
                "Failed to copy %s into cache at %s", source_path, path, exc_info=True
            )
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            return False
        return True

    def remove(self, contenthash):
        path = self.get_cache_path(contenthash)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Failed to remove cached file %s", path, exc_info=True)
            return False
        return True

    def _files(self):
        """Yield (atime, size, path) for every cached file."""
        for dirpath, _dirnames, filenames in os.walk(self.cache_dir):
            for fn in filenames:
                if fn == INDEX_FILENAME:
                    continue
                fp = os.path.join(dirpath, fn)
                try:
                    st = os.stat(fp)
                except OSError:
                    continue
                yield st.st_atime, st.st_size, fp

    def size(self):
        return sum(size for _, size, _ in self._files())

    def evict_if_needed(self):
        """Remove oldest files when over max_size. Returns the count removed."""
        files = list(self._files())
        total_size = sum(size for _, size, _ in files)
        if total_size <= self.max_size:
            return 0

        # Oldest first; ties keep discovery order.
        files.sort(key=lambda x: x[0])

        target = self.target_size
        evicted = 0
        for _atime, size, fp in files:
            if total_size <= target:
                break
            try:
                os.remove(fp)
            except OSError:
                logger.debug("Could not evict %s", fp, exc_info=True)
                continue
            total_size -= size
            evicted += 1

        self._remove_empty_dirs()
        logger.info(
            "Evicted %d cached files, cache now %d bytes (max %d)",
            evicted,
            total_size,
            self.max_size,
        )
        return evicted

    def _remove_empty_dirs(self):
        for dirpath, _dirnames, _filenames in os.walk(self.cache_dir, topdown=False):
            if dirpath == self.cache_dir:
                continue
            with contextlib.suppress(OSError):
                os.rmdir(dirpath)

    def clear(self):
        for dirpath, _dirnames, filenames in os.walk(self.cache_dir, topdown=False):
            for fn in filenames:
                if fn == INDEX_FILENAME:
                    continue
                with contextlib.suppress(OSError):
                    os.remove(os.path.join(dirpath, fn))
            if dirpath != self.cache_dir:
                with contextlib.suppress(OSError):
                    os.rmdir(dirpath)
        logger.info("Cleared cache at %s", self.cache_dir)
        return True
