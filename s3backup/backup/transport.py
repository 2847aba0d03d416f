"""
Transport configuration rendering.

The transport configuration holds the credentials, region and endpoint for
the storage transport. It is rendered once per run to a private temporary
file, shared read-only by every group, and removed when the run ends.
"""

import configparser
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from s3backup.config import Config
from s3backup.exceptions import TransportSetupError
from .providers import resolve_provider


logger = logging.getLogger(__name__)

REMOTE_NAME = 's3_remote'
DEFAULT_ACL = 'private'


@dataclass(frozen=True)
class TransportConfig:
    """Credentials and endpoint settings consumed by the storage transport"""
    kind: str
    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    region: str = ''
    endpoint: str = ''
    acl: str = DEFAULT_ACL

    def to_parser(self) -> configparser.ConfigParser:
        """Render as an INI document with a single [s3_remote] section."""
        parser = configparser.ConfigParser(interpolation=None)
        parser[REMOTE_NAME] = {
            'type': 's3',
            'provider': self.kind,
            'access_key_id': self.access_key_id,
            'secret_access_key': self.secret_access_key,
            'region': self.region,
            'endpoint': self.endpoint,
            'acl': self.acl,
        }
        return parser


def build_transport_config(config: Config) -> TransportConfig:
    """
    Build the transport configuration from validated settings.

    Args:
        config: Config returned by validate_config (provider defaults applied)

    Returns:
        TransportConfig instance
    """
    profile = resolve_provider(config.s3_provider)

    return TransportConfig(
        kind=profile.kind,
        access_key_id=config.access_key_id or '',
        secret_access_key=config.secret_access_key or '',
        region=config.region or '',
        endpoint=config.endpoint_url or '',
        acl=DEFAULT_ACL
    )


def load_transport_config(path: str) -> TransportConfig:
    """
    Read a rendered transport configuration file back.

    Raises:
        TransportSetupError: If the file is missing or has no [s3_remote] section
    """
    parser = configparser.ConfigParser(interpolation=None)
    if not parser.read(path):
        raise TransportSetupError(f"Transport config not found: {path}")
    if not parser.has_section(REMOTE_NAME):
        raise TransportSetupError(f"Transport config has no [{REMOTE_NAME}] section: {path}")

    section = parser[REMOTE_NAME]
    return TransportConfig(
        kind=section.get('provider', ''),
        access_key_id=section.get('access_key_id', ''),
        secret_access_key=section.get('secret_access_key', ''),
        region=section.get('region', ''),
        endpoint=section.get('endpoint', ''),
        acl=section.get('acl', DEFAULT_ACL)
    )


@contextmanager
def transport_config_file(transport_config: TransportConfig, directory: Optional[str] = None,
                          prefix: str = 'rclone.') -> Iterator[str]:
    """
    Render the transport configuration to a private temporary file.

    The file is created with mode 0600 and removed on every exit path.

    Args:
        transport_config: Configuration to render
        directory: Directory for the file (default: system temp dir)
        prefix: File name prefix

    Yields:
        Path to the rendered file

    Raises:
        TransportSetupError: If the file cannot be written
    """
    try:
        fd, path = tempfile.mkstemp(prefix=prefix, dir=directory)
    except OSError as e:
        raise TransportSetupError(f"Failed to create transport config file: {e}")

    try:
        try:
            with os.fdopen(fd, 'w') as f:
                transport_config.to_parser().write(f)
        except OSError as e:
            raise TransportSetupError(f"Failed to write transport config file: {e}")

        logger.debug(f"Transport config rendered to {path}")
        yield path

    finally:
        if os.path.exists(path):
            logger.info("Removing temporary transport config file")
            os.remove(path)
