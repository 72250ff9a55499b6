"""
Exceptions raised while building, signing and sending a request.

None of these are retried; a request is either fully signed and sent or
not sent at all.
"""


class HawsError(Exception):
    """Base class for every error raised by http-aws4."""


class MalformedURL(HawsError):
    """The request URL cannot be split into scheme, host and path."""


class EncodingError(HawsError):
    """A header value cannot be transmitted as text."""


class ResolutionError(HawsError):
    """
    A credential scope value could not be determined.

    :param str value: Name of the missing value, eg. `region`.
    :param str source: The input it was looked up from.
    """

    def __init__(self, value: str, source: str, hint: str = None):
        self.value = value
        self.source = source
        msg = f"Unable to determine {value} from host {source!r}"
        if hint:
            msg = f"{msg}; {hint}"
        super().__init__(msg)


class RegionResolutionError(ResolutionError):
    def __init__(self, source: str):
        super().__init__('region', source, 'pass --region explicitly')


class ServiceResolutionError(ResolutionError):
    def __init__(self, source: str):
        super().__init__('service', source, 'pass --service explicitly')


class CredentialsUnavailable(HawsError):
    """No usable AWS credentials could be found."""


class TransportError(HawsError):
    """The request never produced an HTTP response."""


class HTTPError(HawsError):
    """
    The server answered with a status outside [200, 300).

    The full response is kept on `response` for display.
    """

    def __init__(self, response):
        self.response = response
        super().__init__(
            f"{response.status_code} {response.status_message}".strip()
        )
