"""
S3-compatible storage backend (AWS S3, Cloudflare R2, MinIO, ...).

One boto3 client serves both backend kinds: tracks with a chunked locator are
proxied through `open_byte_range`, tracks with a direct locator are handed a
presigned URL and fetch bytes from the bucket themselves.
"""

import logging
from typing import Any, Dict, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from shared.constants import (
    AWS_S3_ENDPOINT_TEMPLATE,
    CLOUDFLARE_R2_ENDPOINT_TEMPLATE,
    DEFAULT_PRESIGNED_URL_EXPIRY,
    DEFAULT_STREAM_CHUNK_SIZE,
)
from shared.errors import NotFound, StorageNotConfigured, StorageUnavailable
from .storage_provider import ByteStream, StorageBackend

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


def _is_missing(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _MISSING_CODES


class S3CompatibleProvider(StorageBackend):
    """
    S3 storage implementation using the boto3 client.

    Cloudflare R2 is addressed through its account endpoint with the 'auto'
    region; any other service takes an explicit endpoint URL.
    """

    name = "s3"

    def __init__(self, flavour: str = "s3", chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
                 url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY):
        self.flavour = flavour
        self.chunk_size = chunk_size
        self.url_expiry = url_expiry
        self.s3_client = None
        self.bucket_name: Optional[str] = None
        self.endpoint_url: Optional[str] = None

    def _endpoint_for(self, credentials: Dict[str, str]) -> Optional[str]:
        if credentials.get('endpoint'):
            return credentials['endpoint']
        if self.flavour == "r2" and credentials.get('account_id'):
            return CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=credentials['account_id'])
        if credentials.get('region'):
            return AWS_S3_ENDPOINT_TEMPLATE.format(region=credentials['region'])
        return None

    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        Create the client and verify the bucket is reachable.

        Args:
            credentials: Must contain:
                - bucket: Bucket name
                - access_key_id / secret_access_key (optional, falls back to
                  the default boto3 credential chain)
                - endpoint, account_id (R2) or region (optional)
        """
        try:
            self.bucket_name = credentials['bucket']
            self.endpoint_url = self._endpoint_for(credentials)
            region = credentials.get('region') or ('auto' if self.flavour == "r2" else None)

            client_args: Dict[str, Any] = {}
            if self.endpoint_url:
                client_args['endpoint_url'] = self.endpoint_url
            if region:
                client_args['region_name'] = region
            if credentials.get('access_key_id'):
                client_args['aws_access_key_id'] = credentials['access_key_id']
                client_args['aws_secret_access_key'] = credentials.get('secret_access_key')

            self.s3_client = boto3.client('s3', **client_args)
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True

        except (ClientError, NoCredentialsError, BotoCoreError, KeyError) as e:
            logger.error("S3 authentication failed: %s", e)
            return False

    def _require_client(self):
        if self.s3_client is None or not self.bucket_name:
            raise StorageNotConfigured("S3 store is not configured")
        return self.s3_client

    def object_length(self, key: str) -> int:
        client = self._require_client()
        try:
            response = client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"No object at {key}")
            raise StorageUnavailable(f"head_object failed for {key}: {e}")
        except BotoCoreError as e:
            raise StorageUnavailable(f"S3 unreachable: {e}")
        return int(response['ContentLength'])

    def open_byte_range(self, key: str, start: int, end: int) -> Iterator[bytes]:
        client = self._require_client()
        try:
            response = client.get_object(
                Bucket=self.bucket_name,
                Key=key,
                Range=f"bytes={start}-{end}",
            )
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"No object at {key}")
            raise StorageUnavailable(f"get_object failed for {key}: {e}")
        except BotoCoreError as e:
            raise StorageUnavailable(f"S3 unreachable: {e}")
        body = response['Body']
        return ByteStream(self._iter_body(body, key), body.close)

    def _iter_body(self, body, key: str) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        except (BotoCoreError, ClientError) as e:
            # Headers are already on the wire; all we can do is cut the body short.
            logger.error("S3 stream for %s interrupted: %s", key, e)

    def file_exists(self, key: str) -> bool:
        try:
            self.object_length(key)
            return True
        except NotFound:
            return False

    def resolve_direct_url(self, key: str) -> Optional[str]:
        """Generate a presigned GET URL; S3 honours Range on it natively."""
        client = self._require_client()
        try:
            return client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': key},
                ExpiresIn=self.url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("URL generation failed for %s: %s", key, e)
            return None
