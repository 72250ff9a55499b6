"""Tests for request construction, transport and response classification."""

import io
from unittest import mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from http_aws4 import dispatch
from http_aws4.dispatch import (
    USER_AGENT,
    Dispatcher,
    Response,
    normalize_url,
    parse_header_args,
    read_body,
    remove_dot_segments,
)
from http_aws4.errors import (
    CredentialsUnavailable,
    EncodingError,
    HTTPError,
    MalformedURL,
    RegionResolutionError,
    TransportError,
)
from http_aws4.sigv4 import build_request


def make_response(status=200, reason='OK', body=b'{"ok": true}', headers=None):
    res = requests.Response()
    res.status_code = status
    res.reason = reason
    res.headers = CaseInsensitiveDict(headers or {'Content-Type': 'application/json'})
    res._content = body
    return res


@pytest.fixture
def session():
    session = mock.Mock(spec=requests.Session)
    session.request.return_value = make_response()
    return session


class TestNormalizeUrl:
    @pytest.mark.parametrize('url,expected', [
        ('iam.amazonaws.com', 'https://iam.amazonaws.com/'),
        ('HTTPS://IAM.AmazonAWS.com/', 'https://iam.amazonaws.com/'),
        ('https://iam.amazonaws.com:443/x', 'https://iam.amazonaws.com/x'),
        ('http://localhost:80/x', 'http://localhost/x'),
        ('http://localhost:9000/x', 'http://localhost:9000/x'),
        ('https://example.com/a/./b/../c//d/', 'https://example.com/a/c/d/'),
        ('https://example.com/?b=2&a=1#frag', 'https://example.com/?b=2&a=1'),
        ('https://example.com/a%20b', 'https://example.com/a%20b'),
    ])
    def test_urls(self, url, expected) -> None:
        assert normalize_url(url) == expected

    def test_no_host(self) -> None:
        with pytest.raises(MalformedURL):
            normalize_url('https:///path')


class TestRemoveDotSegments:
    def test_empty(self) -> None:
        assert remove_dot_segments('') == '/'

    def test_parent_above_root(self) -> None:
        assert remove_dot_segments('/../a') == '/a'

    def test_does_not_encode(self) -> None:
        assert remove_dot_segments('/a%2Fb') == '/a%2Fb'


class TestParseHeaderArgs:
    def test_headers(self) -> None:
        assert parse_header_args(['X-Amz-Target:DynamoDB_20120810.ListTables', 'Accept: text/plain']) == {
            'x-amz-target': 'DynamoDB_20120810.ListTables',
            'accept': 'text/plain',
        }

    def test_colon_in_value(self) -> None:
        assert parse_header_args(['x-a:b:c']) == {'x-a': 'b:c'}

    def test_later_wins(self) -> None:
        assert parse_header_args(['x-a:1', 'X-A:2']) == {'x-a': '2'}

    def test_missing_colon(self) -> None:
        with pytest.raises(ValueError, match="expected name:value"):
            parse_header_args(['nocolon'])


class TestReadBody:
    def test_reads_bytes(self) -> None:
        assert read_body(io.BytesIO(b'{"a": 1}')) == b'{"a": 1}'

    def test_reads_text(self) -> None:
        assert read_body(io.StringIO('é')) == b'\xc3\xa9'

    def test_none(self) -> None:
        assert read_body(None) == b''

    def test_tty_not_read(self) -> None:
        stream = mock.Mock()
        stream.isatty.return_value = True
        assert read_body(stream) == b''
        stream.read.assert_not_called()


class TestResponse:
    def test_from_requests(self) -> None:
        response = Response.from_requests(make_response(201, 'Created', b'hi', {'content-type': 'text/plain; charset=utf-8'}))
        assert response.status_code == 201
        assert response.status_message == 'Created'
        assert response.headers['Content-Type'] == 'text/plain; charset=utf-8'
        assert response.content_type == 'text/plain; charset=utf-8'
        assert response.text == 'hi'
        assert response.ok

    def test_text_invalid_charset(self) -> None:
        response = Response(200, 'OK', {'content-type': 'text/plain; charset=bogus'}, b'hi')
        assert response.text == 'hi'

    def test_plain_dict_headers_case_insensitive(self) -> None:
        response = Response(200, 'OK', {'Content-Type': 'application/json'}, b'{}')
        assert response.content_type == 'application/json'
        assert response.headers['content-type'] == 'application/json'


class TestPrepare:
    def test_signed_with_user_agent(self, credentials, now) -> None:
        request = Dispatcher(mock.Mock()).prepare(
            'get', 'dynamodb.us-west-2.amazonaws.com', credentials, {'X-Amz-Target': 'T'}, now=now
        )
        assert request.method == 'GET'
        assert request.url == 'https://dynamodb.us-west-2.amazonaws.com/'
        assert request.headers['user-agent'] == USER_AGENT
        assert request.headers['x-amz-target'] == 'T'
        assert 'Credential=AKIDEXAMPLE/20150830/us-west-2/dynamodb/aws4_request' in request.headers['authorization']
        assert 'SignedHeaders=host;user-agent;x-amz-date;x-amz-target,' in request.headers['authorization']

    def test_user_agent_overridable(self, credentials, now) -> None:
        request = Dispatcher(mock.Mock()).prepare(
            'GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, {'User-Agent': 'mine'}, now=now
        )
        assert request.headers['user-agent'] == 'mine'

    def test_region_falls_back_to_profile(self, credentials, now, monkeypatch) -> None:
        lookup = mock.Mock(return_value='eu-west-1')
        monkeypatch.setattr(dispatch, 'get_default_region', lookup)
        request = Dispatcher(mock.Mock()).prepare(
            'GET', 'https://iam.amazonaws.com/', credentials, profile='prod', now=now
        )
        lookup.assert_called_once_with('prod')
        assert '/20150830/eu-west-1/iam/aws4_request' in request.headers['authorization']

    def test_profile_not_consulted_when_host_has_region(self, credentials, now, monkeypatch) -> None:
        lookup = mock.Mock(return_value='eu-west-1')
        monkeypatch.setattr(dispatch, 'get_default_region', lookup)
        Dispatcher(mock.Mock()).prepare('GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, now=now)
        lookup.assert_not_called()

    def test_unresolved_region(self, credentials, now, monkeypatch) -> None:
        monkeypatch.setattr(dispatch, 'get_default_region', mock.Mock(return_value=None))
        with pytest.raises(RegionResolutionError):
            Dispatcher(mock.Mock()).prepare('GET', 'https://example.com/', credentials, now=now)


class TestSend:
    def test_success(self, session, credentials, now) -> None:
        request = Dispatcher(session).prepare(
            'POST', 'https://sqs.us-east-1.amazonaws.com/', credentials, body=b'Action=ListQueues', now=now
        )
        response = Dispatcher(session, timeout=5).send(request)
        assert response.status_code == 200
        assert response.body == b'{"ok": true}'
        session.request.assert_called_once_with(
            'POST',
            'https://sqs.us-east-1.amazonaws.com/',
            headers=dict(request.headers),
            data=b'Action=ListQueues',
            timeout=5,
            allow_redirects=False,
        )

    def test_empty_body_sent_as_none(self, session, credentials, now) -> None:
        request = Dispatcher(session).prepare('GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, now=now)
        Dispatcher(session).send(request)
        assert session.request.call_args.kwargs['data'] is None

    def test_non_ascii_header_sent_as_utf8(self, session, credentials, now) -> None:
        request = Dispatcher(session).prepare(
            'GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, {'x-a': '日本'}, now=now
        )
        Dispatcher(session).send(request)
        assert session.request.call_args.kwargs['headers']['x-a'] == '日本'.encode('utf-8')

    def test_unencodable_header_not_sent(self, session) -> None:
        request = build_request('GET', 'https://sqs.us-east-1.amazonaws.com/', {'x-a': 'bad\udc80'})
        with pytest.raises(EncodingError):
            Dispatcher(session).send(request)
        session.request.assert_not_called()

    @pytest.mark.parametrize('status', [199, 300, 403, 500])
    def test_http_error(self, session, credentials, now, status) -> None:
        session.request.return_value = make_response(status, 'Nope', b'<Error/>')
        request = Dispatcher(session).prepare('GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, now=now)
        with pytest.raises(HTTPError) as exc:
            Dispatcher(session).send(request)
        assert exc.value.response.status_code == status
        assert exc.value.response.body == b'<Error/>'
        assert str(exc.value) == f'{status} Nope'

    @pytest.mark.parametrize('error', [
        requests.exceptions.ConnectionError('refused'),
        requests.exceptions.Timeout('slow'),
    ])
    def test_transport_error(self, session, credentials, now, error) -> None:
        session.request.side_effect = error
        request = Dispatcher(session).prepare('GET', 'https://sqs.us-east-1.amazonaws.com/', credentials, now=now)
        with pytest.raises(TransportError, match='sqs.us-east-1.amazonaws.com') as exc:
            Dispatcher(session).send(request)
        assert exc.value.__cause__ is error


class TestDispatch:
    def test_full_flow(self, session, credentials) -> None:
        seen = []
        response = Dispatcher(session).dispatch(
            'PUT',
            'https://s3.us-east-1.amazonaws.com/bucket/key',
            {'content-type': 'text/plain'},
            body_source=lambda: b'hello',
            credentials_source=lambda: credentials,
            on_request=seen.append,
        )
        assert response.status_code == 200
        (request,) = seen
        assert request.body == b'hello'
        assert request.headers['authorization'].startswith('AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/')
        assert session.request.call_args.kwargs['headers'] == dict(request.headers)

    def test_default_credentials_use_profile(self, session, credentials, monkeypatch) -> None:
        lookup = mock.Mock(return_value=credentials)
        monkeypatch.setattr(dispatch, 'get_credentials', lookup)
        Dispatcher(session).dispatch('GET', 'https://sqs.us-east-1.amazonaws.com/', profile='prod')
        lookup.assert_called_once_with('prod')

    def test_credentials_failure_aborts(self, session) -> None:
        def unavailable():
            raise CredentialsUnavailable('none')

        with pytest.raises(CredentialsUnavailable):
            Dispatcher(session).dispatch(
                'GET', 'https://sqs.us-east-1.amazonaws.com/', credentials_source=unavailable
            )
        session.request.assert_not_called()
