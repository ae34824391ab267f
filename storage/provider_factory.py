"""
Factory for creating storage backend instances.

Simplifies backend selection and builds the set of stores a station serves
from its configuration.
"""

import logging
from typing import Dict

from shared.config import ServerConfig
from shared.models import StorageProvider
from .storage_provider import StorageBackend
from .local_provider import LocalStorageProvider
from .s3_provider import S3CompatibleProvider

logger = logging.getLogger(__name__)


class StorageProviderFactory:
    """Factory for creating storage backend instances."""

    @staticmethod
    def create(provider_type: StorageProvider, **kwargs) -> StorageBackend:
        """
        Create a storage backend instance.

        Args:
            provider_type: Type of backend to create

        Returns:
            Unauthenticated backend instance

        Raises:
            ValueError: If provider type is not supported
        """
        if provider_type == StorageProvider.LOCAL:
            return LocalStorageProvider(**kwargs)

        elif provider_type == StorageProvider.AWS_S3:
            return S3CompatibleProvider(flavour="s3", **kwargs)

        elif provider_type == StorageProvider.CLOUDFLARE_R2:
            return S3CompatibleProvider(flavour="r2", **kwargs)

        elif provider_type == StorageProvider.GENERIC_S3:
            return S3CompatibleProvider(flavour="generic", **kwargs)

        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.LOCAL: "Local Filesystem",
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
            StorageProvider.AWS_S3: "Amazon S3",
            StorageProvider.GENERIC_S3: "Generic S3-Compatible",
        }
        return names.get(provider_type, "Unknown")


def build_backends(config: ServerConfig) -> Dict[str, StorageBackend]:
    """
    Authenticate every backend the configuration enables.

    Returns a mapping of store name (as used in track locators) to backend.
    Backends that fail to authenticate are left out, so tracks pointing at
    them resolve as 'store not configured'.
    """
    backends: Dict[str, StorageBackend] = {}

    if config.local_root:
        local = StorageProviderFactory.create(StorageProvider.LOCAL)
        if local.authenticate({'base_path': config.local_root}):
            backends[local.name] = local
            logger.info("Local store ready at %s", config.local_root)
        else:
            logger.error("Local store disabled: cannot use %s", config.local_root)

    if config.s3_bucket:
        remote = StorageProviderFactory.create(
            StorageProvider(config.s3_provider),
            url_expiry=config.presigned_url_expiry,
        )
        creds = {
            'bucket': config.s3_bucket,
            'endpoint': config.s3_endpoint,
            'region': config.s3_region,
            'account_id': config.s3_account_id,
            'access_key_id': config.s3_access_key_id,
            'secret_access_key': config.s3_secret_access_key,
        }
        if remote.authenticate({k: v for k, v in creds.items() if v}):
            backends[remote.name] = remote
            logger.info("%s store ready (bucket %s)",
                        StorageProviderFactory.get_provider_name(StorageProvider(config.s3_provider)),
                        config.s3_bucket)
        else:
            logger.error("S3 store disabled: bucket %s unreachable", config.s3_bucket)

    return backends
