"""
Build, sign and send a single AWS SigV4 request using the requests library.
"""
import logging
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Mapping

import requests
from requests.structures import CaseInsensitiveDict

from http_aws4 import __version__
from http_aws4.credentials import get_credentials, get_default_region
from http_aws4.errors import HTTPError, TransportError
from http_aws4.sigv4 import (
    Credentials,
    Request,
    build_request,
    parse_aws_host,
    sign_request,
    split_url,
    wire_headers,
)


logger = logging.getLogger(__name__)

USER_AGENT = f'http-aws4/{__version__} (https://github.com/timdp/http-aws4)'
DEFAULT_PORTS = {'http': 80, 'https': 443}
DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class Response:
    """Status, headers and complete body of an HTTP response."""
    status_code: int
    status_message: str
    headers: Mapping[str, str]
    body: bytes

    def __post_init__(self):
        object.__setattr__(self, 'headers', CaseInsensitiveDict(self.headers))

    @classmethod
    def from_requests(cls, res: requests.Response) -> 'Response':
        return cls(res.status_code, res.reason or '', CaseInsensitiveDict(res.headers), res.content)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        return self.headers.get('content-type', '')

    @property
    def text(self) -> str:
        charset = requests.utils.get_encoding_from_headers(self.headers) or 'utf-8'
        try:
            return self.body.decode(charset, errors='replace')
        except LookupError:
            return self.body.decode('utf-8', errors='replace')


def remove_dot_segments(path: str) -> str:
    """
    Normalize the path that is both sent and signed.

    Resolves `.` and `..` segments (RFC 3986, section 5.2.4) and collapses
    consecutive slashes, which AWS services reject. Percent-escapes are
    left alone; encoding happens once, during canonicalization.
    Follows `botocore.utils.remove_dot_segments`.

    :param str path: Url path to normalize.
    :returns: Normalized url path.
    :rtype: str
    """
    if not path:
        return "/"
    output_list: list = []
    for x in path.split('/'):
        if x and x != '.':
            if x == '..':
                if output_list:
                    output_list.pop()
            else:
                output_list.append(x)
    first = '/' if path[0] == '/' else ''
    last = '/' if path[-1] == '/' and output_list else ''
    return first + '/'.join(output_list) + last


def normalize_url(url: str) -> str:
    """
    Normalize a user supplied URL.

    Adds `https://` when no scheme is given, lowercases scheme and host,
    drops default ports and the fragment, and removes dot segments from
    the path. The query string is kept as typed.

    :param str url: URL as typed by the user.
    :returns: Absolute, normalized URL.
    :rtype: str
    :raises MalformedURL: If no host can be found.
    """
    url = url.strip()
    if '://' not in url:
        url = f'https://{url.lstrip("/")}'
    parts = split_url(url)
    scheme = parts.scheme.lower()
    netloc = parts.hostname
    if ':' in netloc:
        netloc = f'[{netloc}]'
    if parts.port is not None and DEFAULT_PORTS.get(scheme) != parts.port:
        netloc = f'{netloc}:{parts.port}'
    return urllib.parse.urlunsplit(
        (scheme, netloc, remove_dot_segments(parts.path), parts.query, '')
    )


def parse_header_args(items) -> dict:
    """
    Turn `name:value` arguments into a header dict.

    :param list items: Header arguments.
    :returns: Headers keyed by lowercase name.
    :rtype: dict
    :raises ValueError: If an item has no ':'.
    """
    headers: dict = {}
    for item in items:
        name, sep, value = item.partition(':')
        if not sep or not name.strip():
            raise ValueError(f"Invalid header {item!r}, expected name:value")
        headers[name.strip().lower()] = value.lstrip()
    return headers


def read_body(stream=None) -> bytes:
    """
    Read the whole request body from a stream, eg. stdin.

    Interactive terminals are not read from.

    :param stream: Binary or text file object.
    :returns: Body bytes, possibly empty.
    :rtype: bytes
    """
    if stream is None or stream.isatty():
        return b''
    data = stream.read()
    if isinstance(data, str):
        data = data.encode('utf-8')
    return data


class Dispatcher:
    """
    Sends SigV4 signed requests over a `requests.Session`.

    Every call signs afresh so a retried request gets a new timestamp.
    """

    def __init__(self, session: requests.Session = None, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def prepare(self,
                method: str,
                url: str,
                credentials: Credentials,
                headers: Mapping[str, str] = None,
                body: str | bytes | None = None,
                region: str = None,
                service: str = None,
                profile: str = None,
                now=None
    ) -> Request:
        """
        Build and sign a request.

        The region falls back from the explicit value to the host name and
        finally to the region configured for `profile`.

        :returns: Signed request.
        :rtype: Request
        """
        url = normalize_url(url)
        merged = {'user-agent': USER_AGENT}
        for name, value in (headers or {}).items():
            merged[name.lower()] = value
        request = build_request(method, url, merged, body)
        if region is None and parse_aws_host(split_url(url).netloc).region is None:
            region = get_default_region(profile)
        return sign_request(request, credentials, region, service, now)

    def send(self, request: Request) -> Response:
        """
        Send a signed request and wait for the complete response.

        :param Request request: Signed request.
        :returns: The response.
        :rtype: Response
        :raises EncodingError: If a header cannot be sent.
        :raises TransportError: If no response was received.
        :raises HTTPError: If the status is outside [200, 300).
        """
        headers = wire_headers(request.headers)
        logger.info("%s %s", request.method, request.url)
        try:
            res = self.session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body or None,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{request.method} {request.url} failed: {exc}") from exc

        response = Response.from_requests(res)
        logger.info("Response: %s %s", response.status_code, response.status_message)
        if not response.ok:
            raise HTTPError(response)
        return response

    def dispatch(self,
                 method: str,
                 url: str,
                 headers: Mapping[str, str] = None,
                 body_source: Callable[[], bytes] = None,
                 credentials_source: Callable[[], Credentials] = None,
                 region: str = None,
                 service: str = None,
                 profile: str = None,
                 on_request: Callable[[Request], None] = None
    ) -> Response:
        """
        Read the body, get credentials, sign, send and collect the response.

        Body and credentials are acquired concurrently; signing waits for both.

        :param str method: HTTP method.
        :param str url: Request URL.
        :param dict headers: Extra request headers.
        :param body_source: Callable returning the body bytes.
        :param credentials_source: Callable returning Credentials, defaults to the profile's.
        :param str region: AWS Region.
        :param str service: AWS Service.
        :param str profile: Shared config profile name.
        :param on_request: Called with the signed request before it is sent.
        :returns: The response.
        :rtype: Response
        """
        body_source = body_source or bytes
        credentials_source = credentials_source or partial(get_credentials, profile)
        with ThreadPoolExecutor(max_workers=2) as pool:
            body = pool.submit(body_source)
            credentials = pool.submit(credentials_source)
            body, credentials = body.result(), credentials.result()

        request = self.prepare(
            method, url, credentials, headers, body, region, service, profile
        )
        if on_request is not None:
            on_request(request)
        return self.send(request)
