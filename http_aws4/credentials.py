"""
Credential and region lookup through botocore's standard provider chain.

Explicit keys win; otherwise the environment, the shared credentials and
config files, and container or instance metadata are consulted in
botocore's usual order.
"""
import logging

import botocore.exceptions
import botocore.session

from http_aws4.errors import CredentialsUnavailable
from http_aws4.sigv4 import Credentials


logger = logging.getLogger(__name__)


def get_credentials(profile: str = None,
                    access_key: str = None,
                    secret_key: str = None,
                    session_token: str = None
) -> Credentials:
    """
    Obtain AWS credentials for one invocation.

    :param str profile: Shared config profile name.
    :param str access_key: Explicit AWS Access Key Id.
    :param str secret_key: Explicit AWS Secret Access Key.
    :param str session_token: Explicit session token for temporary credentials.
    :returns: Frozen credentials.
    :rtype: Credentials
    :raises CredentialsUnavailable: If no credentials can be found.
    """
    if access_key or secret_key:
        if not (access_key and secret_key):
            raise CredentialsUnavailable(
                "Both an access key id and a secret access key are required"
            )
        logger.debug("Using explicitly supplied credentials")
        return Credentials(access_key, secret_key, session_token)

    try:
        found = botocore.session.Session(profile=profile).get_credentials()
        frozen = found.get_frozen_credentials() if found is not None else None
    except botocore.exceptions.BotoCoreError as exc:
        raise CredentialsUnavailable(str(exc)) from exc
    if frozen is None:
        where = f"profile {profile!r}" if profile else "the default provider chain"
        raise CredentialsUnavailable(f"Unable to locate AWS credentials in {where}")

    logger.debug("Got credentials from botocore (method=%s)", found.method)
    return Credentials(frozen.access_key, frozen.secret_key, frozen.token)


def get_default_region(profile: str = None) -> str | None:
    """
    Look up the region configured for a profile.

    Configuration errors are logged and treated as no region.

    :param str profile: Shared config profile name.
    :returns: The configured region, or None.
    :rtype: str
    """
    try:
        region = botocore.session.Session(profile=profile).get_config_variable('region')
    except botocore.exceptions.BotoCoreError as exc:
        logger.warning("Unable to read the default region: %s", exc)
        return None
    logger.debug("Default region for profile %s: %s", profile or 'default', region)
    return region
