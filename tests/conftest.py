import datetime

import pytest

from http_aws4.sigv4 import Credentials


# https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
EXAMPLE_ACCESS_KEY = 'AKIDEXAMPLE'
EXAMPLE_SECRET_KEY = 'wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY'
EXAMPLE_NOW = datetime.datetime(2015, 8, 30, 12, 36, 0, tzinfo=datetime.timezone.utc)

AWS_ENV_VARS = (
    'AWS_ACCESS_KEY_ID',
    'AWS_SECRET_ACCESS_KEY',
    'AWS_SESSION_TOKEN',
    'AWS_SECURITY_TOKEN',
    'AWS_PROFILE',
    'AWS_DEFAULT_PROFILE',
    'AWS_REGION',
    'AWS_DEFAULT_REGION',
    'AWS_CONTAINER_CREDENTIALS_RELATIVE_URI',
    'AWS_CONTAINER_CREDENTIALS_FULL_URI',
    'AWS_WEB_IDENTITY_TOKEN_FILE',
    'AWS_ROLE_ARN',
    'AWS_CREDENTIAL_PROCESS',
)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(EXAMPLE_ACCESS_KEY, EXAMPLE_SECRET_KEY)


@pytest.fixture
def now() -> datetime.datetime:
    return EXAMPLE_NOW


@pytest.fixture
def aws_env(monkeypatch, tmp_path):
    """Isolate botocore from the real environment, shared files and instance metadata."""
    for name in AWS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config = tmp_path / 'config'
    shared = tmp_path / 'credentials'
    config.write_text('')
    shared.write_text('')
    monkeypatch.setenv('AWS_CONFIG_FILE', str(config))
    monkeypatch.setenv('AWS_SHARED_CREDENTIALS_FILE', str(shared))
    monkeypatch.setenv('AWS_EC2_METADATA_DISABLED', 'true')
    return tmp_path
