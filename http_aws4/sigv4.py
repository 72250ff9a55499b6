"""
AWS Signature Version 4 signing for HTTP requests.

Based on:
    https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
    https://github.com/aws-samples/sigv4-signing-examples/blob/main/no-sdk/python/main.py

Signing is pure computation: no I/O, no shared state, safe to call from
several threads for independent requests.
"""
import datetime
import hashlib
import hmac
import logging
import re
import urllib.parse
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, NamedTuple

from http_aws4.errors import (
    EncodingError,
    MalformedURL,
    RegionResolutionError,
    ServiceResolutionError,
)


logger = logging.getLogger(__name__)

ALGORITHM = 'AWS4-HMAC-SHA256'
TERMINATOR = 'aws4_request'
UNSIGNED_HEADERS = ('authorization',)
UNRESERVED = '-_.~'

AWS_HOST_RE = re.compile(
    r'^(?P<labels>.+)\.amazonaws\.com(?:\.cn)?\.?$', re.IGNORECASE
)
REGION_RE = re.compile(r'^[a-z]{2}(?:-[a-z]+)+-\d+$', re.IGNORECASE)
HEADER_SPACE_RE = re.compile(r'[ \t]+')


@dataclass(frozen=True)
class Credentials:
    """AWS credentials for one invocation. The secret parts never show up in `repr()`."""
    access_key: str
    secret_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Request:
    """
    An HTTP request ready to be signed.

    Header names are lowercased on construction and the header mapping is
    read-only; use `with_headers` to derive a new request.
    """
    method: str
    url: str
    headers: Mapping[str, str | bytes] = field(default_factory=dict)
    body: bytes = b''

    def __post_init__(self):
        headers = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, 'headers', MappingProxyType(headers))

    def with_headers(self, headers: Mapping[str, str | bytes]) -> 'Request':
        """
        Return a copy of this request with `headers` merged over the current ones.

        :param dict headers: Headers to add or replace.
        :returns: New request.
        :rtype: Request
        """
        merged = dict(self.headers)
        merged.update((name.lower(), value) for name, value in headers.items())
        return replace(self, headers=merged)


class CanonicalRequest(NamedTuple):
    text: str
    signed_headers: str
    payload_hash: str


class CredentialScope(NamedTuple):
    date: str
    region: str
    service: str
    terminator: str = TERMINATOR

    def __str__(self) -> str:
        return '/'.join(self)


class HostInfo(NamedTuple):
    service: str | None
    region: str | None


def split_url(url: str) -> urllib.parse.SplitResult:
    """
    Split a URL, requiring at least a scheme and a host.

    :param str url: Absolute request URL.
    :returns: The URL components.
    :rtype: urllib.parse.SplitResult
    :raises MalformedURL: If the URL has no scheme or host, or a bad port.
    """
    try:
        parts = urllib.parse.urlsplit(url)
        # port is parsed lazily
        parts.port
    except (ValueError, TypeError, AttributeError) as exc:
        raise MalformedURL(f"Invalid URL {url!r}: {exc}") from exc
    if not parts.scheme or not parts.hostname:
        raise MalformedURL(f"Invalid URL {url!r}: missing scheme or host")
    return parts


def build_request(method: str,
                  url: str,
                  headers: Mapping[str, str | bytes] = None,
                  body: str | bytes | None = None
) -> Request:
    """
    Create a Request, deriving the `host` header from the URL.

    Caller-supplied headers win over the derived `host`.

    :param str method: HTTP method.
    :param str url: Absolute request URL.
    :param dict headers: Extra request headers.
    :param str|bytes body: Request payload, `str` is encoded as UTF-8.
    :returns: The request.
    :rtype: Request
    """
    parts = split_url(url)
    merged = {'host': parts.netloc.rpartition('@')[2]}
    for name, value in (headers or {}).items():
        merged[name.lower()] = value
    if isinstance(body, str):
        body = body.encode('utf-8')
    return Request(method.upper(), url, merged, body or b'')


def _uri_encode(value: str) -> str:
    # decode once so already-escaped input is not escaped twice
    return urllib.parse.quote(urllib.parse.unquote(value), safe=UNRESERVED)


def canonical_uri(path: str) -> str:
    """
    Create the Canonical URI.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#:~:text=CanonicalURI

    :param str path: Url path.
    :returns: Path with every segment URI-encoded, `/` kept as separator.
    :rtype: str
    """
    if not path:
        return '/'
    return '/'.join(_uri_encode(segment) for segment in path.split('/'))


def canonical_query_string(query: str) -> str:
    """
    Create the Canonical query string.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#:~:text=CanonicalQueryString

    Parameters are sorted by encoded name, then by encoded value.

    :param str query: Raw query string, without the leading '?'.
    :returns: Canonical formatted query string.
    :rtype: str
    """
    params: list = []
    for pair in query.split('&'):
        if not pair:
            continue
        name, _, value = pair.partition('=')
        params.append((_uri_encode(name), _uri_encode(value)))
    return '&'.join(f'{name}={value}' for name, value in sorted(params))


def _header_value(name: str, value: str | bytes) -> str:
    if isinstance(value, bytes):
        try:
            value = value.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise EncodingError(f"Header {name!r} is not valid UTF-8") from exc
    value = str(value)
    if '\r' in value or '\n' in value:
        raise EncodingError(f"Header {name!r} contains a line break")
    try:
        value.encode('utf-8')
    except UnicodeEncodeError as exc:
        raise EncodingError(f"Header {name!r} cannot be encoded as UTF-8") from exc
    # only ASCII spaces and tabs are sequential whitespace
    return HEADER_SPACE_RE.sub(' ', value.strip(' \t'))


def wire_headers(headers: Mapping[str, str | bytes]) -> dict:
    """
    Headers as sent on the wire.

    Non-ASCII `str` values are sent as UTF-8 bytes, the same bytes the
    signature covers.

    :param dict headers: Request headers.
    :returns: Headers with non-ASCII values encoded.
    :rtype: dict
    :raises EncodingError: If a value cannot be sent as a header.
    """
    wire: dict = {}
    for name, value in headers.items():
        if isinstance(value, str) and not value.isascii():
            _header_value(name, value)
            value = value.encode('utf-8')
        wire[name] = value
    return wire


def _headers_to_sign(headers: Mapping[str, str | bytes]) -> dict:
    return {
        name.lower(): value for name, value in headers.items()
        if name.lower() not in UNSIGNED_HEADERS
    }


def signed_headers(headers: Mapping[str, str | bytes]) -> str:
    """
    Create the list of Canonical signed headers.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#:~:text=SignedHeaders

    :param dict headers: Request headers.
    :returns: Sorted lowercase header names joined with ';'.
    :rtype: str
    """
    return ';'.join(sorted(_headers_to_sign(headers)))


def canonical_headers(headers: Mapping[str, str | bytes]) -> str:
    """
    Create Canonical formatted headers.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#:~:text=CanonicalHeaders

    :param dict headers: Request headers.
    :returns: One `name:value\\n` line per signed header, sorted by name.
    :rtype: str
    :raises EncodingError: If a value cannot be sent as a header.
    """
    to_sign = _headers_to_sign(headers)
    return ''.join(
        f'{name}:{_header_value(name, to_sign[name])}\n'
        for name in sorted(to_sign)
    )


def payload_hash(payload: str | bytes | None) -> str:
    """
    Generate a SHA-256 hash of the payload.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#:~:text=HashedPayload

    :param str|bytes payload: Payload data to hash.
    :returns: Lowercase hex SHA-256 of the payload.
    :rtype: str
    """
    if payload is None:
        payload = b''
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    return hashlib.sha256(payload).hexdigest()


def canonical_request(request: Request) -> CanonicalRequest:
    """
    Build the Canonical request.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#create-canonical-request

    :param Request request: Request to canonicalize.
    :returns: Canonical request string, signed header list and payload hash.
    :rtype: CanonicalRequest
    """
    parts = split_url(request.url)
    names = signed_headers(request.headers)
    hashed_payload = payload_hash(request.body)
    text = '\n'.join([
        request.method,
        canonical_uri(parts.path),
        canonical_query_string(parts.query),
        canonical_headers(request.headers),
        names,
        hashed_payload,
    ])
    return CanonicalRequest(text, names, hashed_payload)


def get_timestamps(now: datetime.datetime = None) -> tuple:
    """
    Create the AWS formatted timestamps from a single instant.

    :param datetime.datetime now: Signing instant, naive values are taken as UTC.
    :returns: (`YYYYMMDDTHHMMSSZ`, `YYYYMMDD`)
    :rtype: tuple
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    else:
        now = now.astimezone(datetime.timezone.utc)
    return now.strftime('%Y%m%dT%H%M%SZ'), now.strftime('%Y%m%d')


def parse_aws_host(host: str) -> HostInfo:
    """
    Infer service and region from an AWS endpoint host name.

    Handles `<service>.<region>.amazonaws.com`, `<region>.<service>.amazonaws.com`
    and global endpoints such as `iam.amazonaws.com`. A label right of the
    region is the service (`<domain>.<region>.es.amazonaws.com`); otherwise
    the label left of it is. Values that cannot be inferred are None.

    :param str host: Host name, optionally with a port.
    :returns: Inferred service and region.
    :rtype: HostInfo
    """
    hostname = host.rpartition('@')[2]
    if not hostname.startswith('['):
        hostname = hostname.partition(':')[0]
    match = AWS_HOST_RE.match(hostname)
    if not match:
        return HostInfo(None, None)
    labels = match.group('labels').lower().split('.')
    for i in reversed(range(len(labels))):
        if REGION_RE.match(labels[i]):
            if i + 1 < len(labels):
                service = labels[i + 1]
            elif i > 0:
                service = labels[i - 1]
            else:
                service = None
            return HostInfo(service, labels[i])
    return HostInfo(labels[-1], None)


def resolve_scope(host: str,
                  date: str,
                  region: str = None,
                  service: str = None
) -> CredentialScope:
    """
    Build the credential scope, falling back to the host name for region and service.

    :param str host: Request host.
    :param str date: AWS SigV4 formatted date YYYYMMDD.
    :param str region: Explicit AWS Region.
    :param str service: Explicit AWS Service.
    :returns: The credential scope.
    :rtype: CredentialScope
    :raises RegionResolutionError: No region given and none in the host.
    :raises ServiceResolutionError: No service given and none in the host.
    """
    info = parse_aws_host(host)
    region = region or info.region
    if not region:
        raise RegionResolutionError(host)
    service = service or info.service
    if not service:
        raise ServiceResolutionError(host)
    return CredentialScope(date, region.lower(), service.lower())


def hmac_sha256(key: bytes, msg: str) -> bytes:
    """
    Sign a message with HMAC-SHA256.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#calculate-signature

    :param bytes key: Key to use for signing.
    :param str msg: Message to sign.
    :returns: Raw digest.
    :rtype: bytes
    """
    return hmac.new(key, msg.encode('utf-8'), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, scope: CredentialScope) -> bytes:
    """
    Create a signing key.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#derive-signing-key

    The scope changes daily, so the key is derived again for every signature.

    :param str secret_key: AWS Secret Access Key.
    :param CredentialScope scope: Credential scope.
    :returns: Signing key.
    :rtype: bytes
    """
    key_date = hmac_sha256(f"AWS4{secret_key}".encode("utf-8"), scope.date)
    key_region = hmac_sha256(key_date, scope.region)
    key_service = hmac_sha256(key_region, scope.service)
    return hmac_sha256(key_service, scope.terminator)


def string_to_sign(amz_date: str, scope: CredentialScope, canonical: str) -> str:
    """
    Create the string to sign.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#create-string-to-sign

    :param str amz_date: AWS SigV4 formatted timestamp YYYYMMDDTHHMMSSZ.
    :param CredentialScope scope: Credential scope.
    :param str canonical: Canonical request string.
    :returns: String to sign.
    :rtype: str
    """
    request_hash = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
    return f"{ALGORITHM}\n{amz_date}\n{scope}\n{request_hash}"


def compute_signature(signing_key: bytes, to_sign: str) -> str:
    """
    Calculate the signature.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html#calculate-signature

    :param bytes signing_key: Derived signing key.
    :param str to_sign: String to sign.
    :returns: Lowercase hex signature.
    :rtype: str
    """
    return hmac.new(signing_key, to_sign.encode('utf-8'), hashlib.sha256).hexdigest()


def authorization_header(access_key: str,
                         scope: CredentialScope,
                         signed_header_names: str,
                         signature: str
) -> str:
    """
    Build the Auth header string.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/signing-elements.html#authentication

    :param str access_key: AWS Access Key Id.
    :param CredentialScope scope: Credential scope.
    :param str signed_header_names: Headers included in request signature.
    :param str signature: Calculated request signature.
    :returns: Authorization header string.
    :rtype: str
    """
    return f"{ALGORITHM} Credential={access_key}/{scope}, " \
           f"SignedHeaders={signed_header_names}, " \
           f"Signature={signature}"


def _redact(text: str, credentials: Credentials) -> str:
    if credentials.session_token:
        text = text.replace(credentials.session_token, '[REDACTED]')
    return text


def sign_request(request: Request,
                 credentials: Credentials,
                 region: str = None,
                 service: str = None,
                 now: datetime.datetime = None
) -> Request:
    """
    Sign a request with AWS SigV4 Authentication.
    See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html

    The `x-amz-date`, `x-amz-security-token` (with a session token) and,
    for S3, `x-amz-content-sha256` headers are added before canonicalization
    so they are covered by the signature.

    :param Request request: Request to sign.
    :param Credentials credentials: AWS credentials.
    :param str region: AWS Region, inferred from the host when omitted.
    :param str service: AWS Service, inferred from the host when omitted.
    :param datetime.datetime now: Signing instant, defaults to the current UTC time.
    :returns: New request carrying the Authorization header.
    :rtype: Request
    """
    parts = split_url(request.url)
    amz_date, date = get_timestamps(now)
    scope = resolve_scope(parts.netloc, date, region, service)

    # these must exist before canonicalization to be signed
    headers = {'x-amz-date': amz_date}
    if credentials.session_token:
        headers['x-amz-security-token'] = credentials.session_token
    if scope.service == 's3':
        headers['x-amz-content-sha256'] = payload_hash(request.body)
    request = request.with_headers(headers)

    canonical = canonical_request(request)
    to_sign = string_to_sign(amz_date, scope, canonical.text)
    signing_key = derive_signing_key(credentials.secret_key, scope)
    signature = compute_signature(signing_key, to_sign)
    del signing_key

    logger.debug("Payload Hash: %s", canonical.payload_hash)
    logger.debug("Canonical Request:\n---\n%s\n---", _redact(canonical.text, credentials))
    logger.debug("Credential Scope: %s", scope)
    logger.debug("String to Sign:\n---\n%s\n---", to_sign)
    logger.debug("Signature: %s", signature)

    authorization = authorization_header(
        credentials.access_key, scope, canonical.signed_headers, signature
    )
    return request.with_headers({'authorization': authorization})
