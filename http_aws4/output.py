"""
Plain-text display of the signed request and the response.

What gets printed is selected with a flag string over `HBhb`:

    H  request line and headers
    B  request body
    h  response status line and headers
    b  response body
"""
import json
import re
import sys

from http_aws4.dispatch import Response
from http_aws4.sigv4 import Request


PRINT_FLAGS_RE = re.compile(r'^[HBhb]+$')
PRETTY_CHOICES = ('format', 'none')
JSON_RE = re.compile(r'\bjson\b')


def validate_print_flags(value: str) -> str:
    """
    Check a print flag string.

    :param str value: Flags, any combination of `HBhb`.
    :returns: The unchanged flags.
    :rtype: str
    :raises ValueError: If the string is empty or has other characters.
    """
    if not PRINT_FLAGS_RE.match(value or ''):
        raise ValueError('Allowed flags: HBhb')
    return value


def indent(body: str, content_type: str) -> str:
    """
    Re-indent a JSON body, leaving anything else untouched.

    :param str body: Response body text.
    :param str content_type: The `Content-Type` of the response.
    :returns: Formatted body.
    :rtype: str
    """
    if not JSON_RE.search(content_type or ''):
        return body
    try:
        return json.dumps(json.loads(body), indent=2)
    except ValueError:
        return body


class Printer:
    """Writes requests and responses to a stream according to the print flags."""

    def __init__(self, print_flags: str = 'hb', pretty: str = 'none', stream=None):
        self.print_flags = validate_print_flags(print_flags)
        if pretty not in PRETTY_CHOICES:
            raise ValueError(f"Invalid pretty mode {pretty!r}, choose from {PRETTY_CHOICES}")
        self.pretty = pretty
        self.stream = stream or sys.stdout

    def _write(self, line: str = '') -> None:
        self.stream.write(f'{line}\n')

    def _headers(self, headers) -> None:
        for name in sorted(headers, key=str.lower):
            value = headers[name]
            if isinstance(value, bytes):
                value = value.decode('utf-8', errors='replace')
            self._write(f'{name}: {value}')

    def request(self, request: Request) -> None:
        """
        Print the request line and headers (`H`) and the body (`B`).

        :param Request request: Signed request about to be sent.
        """
        if 'H' in self.print_flags:
            self._write(f'{request.method} {request.url}')
            self._headers(request.headers)
            self._write()
        if 'B' in self.print_flags:
            self._write(request.body.decode('utf-8', errors='replace').rstrip())
            self._write()

    def response(self, response: Response) -> None:
        """
        Print the status line and headers (`h`) and the body (`b`).

        :param Response response: Received response.
        """
        if 'h' in self.print_flags:
            self._write(f'{response.status_code} {response.status_message}'.rstrip())
            self._headers(response.headers)
            self._write()
        if 'b' in self.print_flags:
            body = response.text
            if body and self.pretty == 'format':
                body = indent(body, response.content_type)
            self._write(body)
