"""
Object storage client for the temporary upload bucket
Supabase Storage is reached through its S3-compatible endpoint.
"""
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from banana_friends.config.settings import Settings, STORAGE_SETTING_NAMES
from banana_friends.api.errors import ConfigurationError
from typing import List, Optional
import logging
logger = logging.getLogger(__name__)


class S3Client:
    """S3 storage client for file operations on one bucket"""
    def __init__(self, settings: Settings, bucket_name: Optional[str] = None, client=None):
        """
        Initialize S3 client
        Args:
            settings: Application settings holding the storage credentials
            bucket_name: Bucket to operate on (defaults to the temp upload bucket)
            client: Pre-built boto3 client, mainly for tests
        """
        self.bucket_name = bucket_name or settings.STORAGE_TEMP_BUCKET
        if client is None:
            endpoint_url = settings.storage_endpoint_url
            if not endpoint_url or not settings.STORAGE_ACCESS_KEY_ID or not settings.STORAGE_SECRET_ACCESS_KEY:
                raise ConfigurationError(
                    "Missing storage credentials",
                    debug=settings.presence(STORAGE_SETTING_NAMES),
                )
            client = boto3.client(
                's3',
                aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
                aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
                region_name=settings.STORAGE_REGION,
                endpoint_url=endpoint_url
            )
        self.client = client

    def download_file(self, key: str) -> bytes:
        """
        Download file from storage
        Args:
            key: Object key (path)
        Returns:
            File content as bytes
        """
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
            data = response['Body'].read()
            logger.info(f"Downloaded {self.bucket_name}/{key} ({len(data)} bytes)")
            return data
        except ClientError as e:
            logger.error(f"Error downloading {self.bucket_name}/{key}: {e}")
            raise

    def delete_file(self, key: str) -> bool:
        """
        Delete file from storage
        Args:
            key: Object key (path)
        Returns:
            True if successful, False otherwise
        """
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
            logger.info(f"File deleted from storage: {self.bucket_name}/{key}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Error deleting {self.bucket_name}/{key}: {e}")
            return False

    def list_files(self, prefix: str = "", limit: int = 1000) -> List[str]:
        """
        List files in the bucket with given prefix
        Args:
            prefix: Key prefix to filter files
            limit: Maximum number of keys returned
        Returns:
            List of object keys
        Raises:
            ClientError when the bucket cannot be listed
        """
        response = self.client.list_objects_v2(Bucket=self.bucket_name, Prefix=prefix, MaxKeys=limit)
        return [obj['Key'] for obj in response.get('Contents', [])]

    def delete_files(self, keys: List[str]) -> int:
        """Delete several objects in one request, returns the number removed"""
        if not keys:
            return 0
        response = self.client.delete_objects(
            Bucket=self.bucket_name,
            Delete={'Objects': [{'Key': key} for key in keys], 'Quiet': False}
        )
        errors = response.get('Errors', [])
        for error in errors:
            logger.warning(f"Could not delete {error.get('Key')}: {error.get('Message')}")
        return len(response.get('Deleted', []))

    def delete_bucket(self) -> None:
        self.client.delete_bucket(Bucket=self.bucket_name)
        logger.info(f"Bucket deleted: {self.bucket_name}")
