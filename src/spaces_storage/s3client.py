from spaces_storage.interfaces import IObjectClient
from spaces_storage.signing import CONTENT_SHA256_HEADER
from spaces_storage.signing import EMPTY_PAYLOAD_HASH
from spaces_storage.signing import RequestSigner
from urllib.parse import quote
from zope.interface import implementer

import base64
import contextlib
import hashlib
import httpx
import logging
import os
import tempfile


logger = logging.getLogger(__name__)

# Sized for small-to-medium assets, not bulk transfer.
TRANSFER_TIMEOUT = httpx.Timeout(20.0, connect=5.0)
DELETE_TIMEOUT = httpx.Timeout(15.0, connect=5.0)
# HEAD gates fast existence checks.
HEAD_TIMEOUT = httpx.Timeout(8.0, connect=3.0)

_CHUNK_SIZE = 64 * 1024


class TransportError(Exception):
    """A remote operation failed with a non-2xx status or a network error."""

    def __init__(self, message, status_code=None, url=None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


def _is_success(status_code):
    return 200 <= status_code < 300


def file_digests(local_path):
    """Return (size, base64 MD5, hex SHA-256) of a file in one pass."""
    md5 = hashlib.md5()
    sha256 = hashlib.sha256()
    size = 0
    with open(local_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            md5.update(chunk)
            sha256.update(chunk)
            size += len(chunk)
    return size, base64.b64encode(md5.digest()).decode("ascii"), sha256.hexdigest()


@implementer(IObjectClient)
class S3Client:
    """Minimal path-style client for S3-compatible object storage.

    Requests are signed with :class:`RequestSigner` and sent over HTTP/1.1
    through a single ``httpx.Client`` that follows redirects.
    """

    def __init__(
        self,
        access_key,
        secret_key,
        region,
        endpoint,
        cdn_endpoint="",
        transport=None,
    ):
        self.endpoint = endpoint.rstrip("/")
        # Kept for configuration parity; reads always use the signed endpoint.
        self.cdn_endpoint = cdn_endpoint.rstrip("/") if cdn_endpoint else ""
        self.signer = RequestSigner(access_key, secret_key, region, self.endpoint)
        if not self.endpoint.startswith("https://"):
            logger.warning(
                "Object store endpoint is not HTTPS; credentials are sent in cleartext"
            )
        self._client = httpx.Client(
            http1=True,
            http2=False,
            follow_redirects=True,
            timeout=TRANSFER_TIMEOUT,
            transport=transport,
        )

    def get_url(self, bucket, key):
        return f"{self.endpoint}/{bucket}/{quote(key.lstrip('/'), safe='/~')}"

    def _signed_headers(self, method, bucket, key, headers):
        headers[CONTENT_SHA256_HEADER] = headers.get(
            CONTENT_SHA256_HEADER, EMPTY_PAYLOAD_HASH
        )
        headers["Authorization"] = self.signer.sign(method, bucket, key, headers)
        return headers

    def _failure(self, operation, key, response=None, error=None, url=None):
        if response is not None:
            status = response.status_code
            detail = response.text.strip()
        else:
            status = None
            detail = str(error)
        message = f"S3 {operation} failed (HTTP {status or 0}) for key={key}"
        if url:
            message += f" from {url}"
        if detail:
            message += f": {detail}"
        logger.debug(message)
        return TransportError(message, status_code=status, url=url)

    def put_object(self, bucket, key, local_path):
        size, content_md5, content_sha256 = file_digests(local_path)
        headers = self._signed_headers(
            "PUT",
            bucket,
            key,
            {
                "Content-Type": "application/octet-stream",
                "Content-Length": str(size),
                "Content-MD5": content_md5,
                CONTENT_SHA256_HEADER: content_sha256,
            },
        )
        url = self.get_url(bucket, key)
        logger.debug("PUT %s (%d bytes)", url, size)
        try:
            with open(local_path, "rb") as body:
                response = self._client.put(
                    url, content=body, headers=headers, timeout=TRANSFER_TIMEOUT
                )
        except httpx.HTTPError as e:
            raise self._failure("PUT", key, error=e) from e
        if not _is_success(response.status_code):
            raise self._failure("PUT", key, response=response)
        return True

    def get_object(self, bucket, key, local_path):
        headers = self._signed_headers("GET", bucket, key, {})
        url = self.get_url(bucket, key)
        logger.debug("GET %s", url)
        target_dir = os.path.dirname(local_path) or "."
        os.makedirs(target_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=target_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                try:
                    with self._client.stream(
                        "GET", url, headers=headers, timeout=TRANSFER_TIMEOUT
                    ) as response:
                        if not _is_success(response.status_code):
                            response.read()
                            raise self._failure(
                                "GET", key, response=response, url=str(response.url)
                            )
                        # Raw bytes: the cached file must equal the stored object.
                        for chunk in response.iter_raw(_CHUNK_SIZE):
                            f.write(chunk)
                except httpx.HTTPError as e:
                    raise self._failure("GET", key, error=e, url=url) from e
            os.replace(tmp_path, local_path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
        return True

    def head_object(self, bucket, key):
        headers = self._signed_headers("HEAD", bucket, key, {})
        url = self.get_url(bucket, key)
        try:
            response = self._client.head(url, headers=headers, timeout=HEAD_TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug("HEAD %s failed: %s", url, e)
            return False
        logger.debug("HEAD %s -> %d", url, response.status_code)
        return _is_success(response.status_code)

    def delete_object(self, bucket, key):
        headers = self._signed_headers("DELETE", bucket, key, {})
        url = self.get_url(bucket, key)
        logger.debug("DELETE %s", url)
        try:
            response = self._client.delete(
                url, headers=headers, timeout=DELETE_TIMEOUT
            )
        except httpx.HTTPError as e:
            raise self._failure("DELETE", key, error=e) from e
        if not _is_success(response.status_code):
            raise self._failure("DELETE", key, response=response)
        return True

    def close(self):
        self._client.close()
