"""
Command line entry point: `haws [options] [METHOD] URL [name:value ...]`.
"""
import argparse
import logging
import re
import sys

from http_aws4 import __version__
from http_aws4.credentials import get_credentials
from http_aws4.dispatch import DEFAULT_TIMEOUT, Dispatcher, parse_header_args, read_body
from http_aws4.errors import HawsError, HTTPError
from http_aws4.output import PRETTY_CHOICES, Printer, validate_print_flags


logger = logging.getLogger(__name__)

METHOD_RE = re.compile(r'^\w+$')


def _print_flags(value: str) -> str:
    try:
        return validate_print_flags(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser(isatty: bool = False) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='haws',
        usage='%(prog)s [options] [method] <url> [header:value ...]',
        description='Performs AWS Signature Version 4-signed HTTP requests.',
    )
    parser.add_argument('args', nargs='+', metavar='[method] url [header:value]')
    parser.add_argument('-p', '--print', dest='print_flags', type=_print_flags,
                        default='hb' if isatty else 'b',
                        help='Parts of the request and response to output (HBhb)')
    parser.add_argument('--pretty', choices=PRETTY_CHOICES,
                        default='format' if isatty else 'none',
                        help='Output formatting')
    parser.add_argument('-r', '--region', default=None, help='AWS region (default: <auto>)')
    parser.add_argument('-s', '--service', default=None, help='AWS service name (default: <auto>)')
    parser.add_argument('--profile', default=None, help='AWS profile')
    parser.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT,
                        help='Connection and read timeout in seconds')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log signing details')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def split_args(args: list) -> tuple:
    """
    Split positional arguments into method, url and header items.

    A leading bare word is the method; otherwise the method is GET.

    :param list args: Positional arguments.
    :returns: (method, url, header items)
    :rtype: tuple
    """
    args = list(args)
    if len(args) > 1 and METHOD_RE.match(args[0]):
        method = args.pop(0).upper()
    else:
        method = 'GET'
    return method, args[0], args[1:]


def main(argv=None) -> int:
    stdout_tty = sys.stdout.isatty()
    parser = build_parser(stdout_tty)
    opts = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if opts.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    method, url, header_items = split_args(opts.args)
    try:
        headers = parse_header_args(header_items)
    except ValueError as exc:
        parser.error(str(exc))

    printer = Printer(opts.print_flags, opts.pretty, sys.stdout)
    dispatcher = Dispatcher(timeout=opts.timeout)
    stdin = getattr(sys.stdin, 'buffer', sys.stdin)
    try:
        response = dispatcher.dispatch(
            method,
            url,
            headers,
            body_source=lambda: read_body(stdin),
            credentials_source=lambda: get_credentials(opts.profile),
            region=opts.region,
            service=opts.service,
            profile=opts.profile,
            on_request=printer.request,
        )
    except HTTPError as exc:
        Printer(opts.print_flags, opts.pretty, sys.stderr).response(exc.response)
        return 1
    except HawsError as exc:
        logger.error("%s", exc)
        return 1

    printer.response(response)
    return 0
