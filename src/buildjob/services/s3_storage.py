"""
S3 artifact storage.
"""

import logging
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..executor.thread_pool import ManagedThreadPoolExecutor
from ..models.config import StorageConfig
from ..validation import StorageError
from .base import BlobStorage

logger = logging.getLogger(__name__)


def create_s3_client(config: StorageConfig):
    return boto3.client(
        "s3",
        region_name=config.region,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
    )


class S3Storage(BlobStorage):
    """BlobStorage backed by a boto3 S3 client running in a thread pool."""

    def __init__(self, config: StorageConfig, pool: ManagedThreadPoolExecutor, client=None):
        self.config = config
        self.pool = pool
        self.client = client if client is not None else create_s3_client(config)

    async def upload(self, local_path: Path, destination_key: str, content_type: str) -> None:
        file_name = Path(local_path).name
        try:
            await self.pool.run_async(
                self.client.upload_file,
                str(local_path),
                self.config.bucket_name,
                destination_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError, OSError) as e:
            logger.error(f"Failed to upload {file_name}: {e}")
            raise StorageError(
                f"Failed to upload {file_name}",
                details={"file": file_name, "key": destination_key, "originalError": str(e)},
            ) from e
        logger.info(f"Successfully uploaded {file_name}")
