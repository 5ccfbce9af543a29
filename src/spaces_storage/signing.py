from datetime import datetime
from datetime import timezone
from spaces_storage.interfaces import IRequestSigner
from urllib.parse import quote
from urllib.parse import urlsplit
from zope.interface import implementer

import hashlib
import hmac


ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
SCOPE_TERMINATOR = "aws4_request"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()
CONTENT_SHA256_HEADER = "x-amz-content-sha256"


def _hmac(key, msg):
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def _header(headers, name):
    """Case-insensitive header lookup."""
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def canonical_uri(bucket, key, base_path=""):
    return quote(f"{base_path}/{bucket}/{key.lstrip('/')}", safe="/~")


def utc_timestamp():
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


@implementer(IRequestSigner)
class RequestSigner:
    """Signature Version 4 signer for path-style S3 requests.

    Only what this package sends is supported: no query string and a
    payload hash supplied through the ``x-amz-content-sha256`` header.
    """

    def __init__(self, access_key, secret_key, region, endpoint):
        self.access_key = access_key
        self._secret_key = secret_key
        self.region = region
        parts = urlsplit(endpoint)
        self.host = parts.netloc
        # Endpoints mounted under a path prefix sign the full request path.
        self.base_path = parts.path.rstrip("/")

    def credential_scope(self, date):
        return f"{date}/{self.region}/{SERVICE}/{SCOPE_TERMINATOR}"

    def signing_key(self, date):
        k_date = _hmac(f"AWS4{self._secret_key}".encode("utf-8"), date)
        k_region = _hmac(k_date, self.region)
        k_service = _hmac(k_region, SERVICE)
        return _hmac(k_service, SCOPE_TERMINATOR)

    def canonical_request(self, method, bucket, key, headers):
        names = sorted(headers, key=str.lower)
        canonical_headers = "".join(
            f"{name.lower()}:{str(headers[name]).strip()}\n" for name in names
        )
        signed_headers = ";".join(name.lower() for name in names)
        payload_hash = _header(headers, CONTENT_SHA256_HEADER) or EMPTY_PAYLOAD_HASH
        canonical = "\n".join(
            [
                method.upper(),
                canonical_uri(bucket, key, self.base_path),
                "",
                canonical_headers,
                signed_headers,
                payload_hash,
            ]
        )
        return canonical, signed_headers

    def string_to_sign(self, timestamp, canonical_request):
        return "\n".join(
            [
                ALGORITHM,
                timestamp,
                self.credential_scope(timestamp[:8]),
                hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
            ]
        )

    def sign(self, method, bucket, key, headers, timestamp=None):
        """Return the Authorization header value for a request.

        ``headers`` is updated in place with ``Host`` and ``x-amz-date``;
        every header present afterwards is signed, so the caller must send
        exactly this set.
        """
        if timestamp is None:
            timestamp = utc_timestamp()
        date = timestamp[:8]
        headers["Host"] = self.host
        headers["x-amz-date"] = timestamp

        canonical, signed_headers = self.canonical_request(
            method, bucket, key, headers
        )
        signature = hmac.new(
            self.signing_key(date),
            self.string_to_sign(timestamp, canonical).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return (
            f"{ALGORITHM} "
            f"Credential={self.access_key}/{self.credential_scope(date)}, "
            f"SignedHeaders={signed_headers}, "
            f"Signature={signature}"
        )
