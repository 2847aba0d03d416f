"""
S3 provider profiles.

Maps the declared S3_PROVIDER to the transport's provider kind and to the
region/endpoint settings that provider needs.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional

from s3backup.config import Config
from s3backup.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

REQUIRED = 'required'
OPTIONAL = 'optional'
FORBIDDEN = 'forbidden'


@dataclass(frozen=True)
class ProviderProfile:
    """Transport settings for one S3-compatible provider"""
    name: str
    kind: str  # provider value understood by the transport program
    region: str = REQUIRED
    endpoint: str = REQUIRED
    default_region: Optional[str] = None


_AWS = ProviderProfile('aws', 'AWS', region=REQUIRED, endpoint=FORBIDDEN)
_R2 = ProviderProfile('cloudflare', 'Other', region=OPTIONAL, endpoint=REQUIRED, default_region='auto')
_MINIO = ProviderProfile('minio', 'Minio')
_DIGITALOCEAN = ProviderProfile('digitalocean', 'DigitalOcean')
_OTHER = ProviderProfile('other', 'Other')

PROVIDER_PROFILES = {
    'aws': _AWS,
    'cloudflare': _R2,
    'r2': _R2,
    'minio': _MINIO,
    'digitalocean': _DIGITALOCEAN,
}


def resolve_provider(name: str) -> ProviderProfile:
    """
    Look up the profile for a provider name (case-insensitive).

    Any unknown name (wasabi, backblaze, scaleway, ...) gets the generic
    profile that requires both region and endpoint.
    """
    return PROVIDER_PROFILES.get((name or '').strip().lower(), _OTHER)


def apply_provider_defaults(config: Config) -> Config:
    """
    Check region/endpoint against the provider profile and fill in defaults.

    Args:
        config: Configuration with S3_PROVIDER set

    Returns:
        Config with the provider's default region applied and, for providers
        that forbid an endpoint, the endpoint cleared

    Raises:
        ConfigurationError: If a required region or endpoint is missing
    """
    profile = resolve_provider(config.s3_provider)
    provider = config.s3_provider
    changes = {}

    if not config.region:
        if profile.region == REQUIRED:
            raise ConfigurationError(f"AWS_REGION is required for S3_PROVIDER '{provider}'")
        if profile.default_region is not None:
            logger.info(f"AWS_REGION not set, using '{profile.default_region}' for S3_PROVIDER '{provider}'")
            changes['region'] = profile.default_region

    if config.endpoint_url:
        if profile.endpoint == FORBIDDEN:
            logger.warning(
                f"AWS_S3_ENDPOINT_URL is set for S3_PROVIDER '{provider}' but should be empty. "
                f"It will be ignored."
            )
            changes['endpoint_url'] = None
    elif profile.endpoint == REQUIRED:
        raise ConfigurationError(f"AWS_S3_ENDPOINT_URL is required for S3_PROVIDER '{provider}'")

    if changes:
        return dataclasses.replace(config, **changes)
    return config
