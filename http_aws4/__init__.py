"""
Perform AWS Signature Version 4 signed HTTP requests.
"""
__version__ = '0.7.0'

from http_aws4.errors import (  # noqa: E402
    CredentialsUnavailable,
    EncodingError,
    HawsError,
    HTTPError,
    MalformedURL,
    RegionResolutionError,
    ServiceResolutionError,
    TransportError,
)
from http_aws4.sigv4 import Credentials, Request, build_request, sign_request  # noqa: E402

__all__ = [
    'Credentials',
    'CredentialsUnavailable',
    'EncodingError',
    'HawsError',
    'HTTPError',
    'MalformedURL',
    'RegionResolutionError',
    'Request',
    'ServiceResolutionError',
    'TransportError',
    'build_request',
    'sign_request',
]
