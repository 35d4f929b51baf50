"""
S3 client for document storage.
"""
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from typing import Optional, BinaryIO, Tuple
from io import BytesIO

from core.logger import logger


def split_s3_path(s3_path: str) -> Tuple[Optional[str], str]:
    """Split "s3://bucket/key" into (bucket, key); bare keys return (None, key)."""
    if s3_path.startswith("s3://"):
        parts = s3_path[len("s3://"):].split("/", 1)
        return parts[0], parts[1] if len(parts) > 1 else ""
    return None, s3_path


class S3Client:
    """S3 client for storing and retrieving uploaded documents in a single bucket."""

    def __init__(
        self,
        bucket_name: str,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,  # For S3-compatible services (MinIO, etc.)
        auto_create_bucket: bool = True
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding all documents
            aws_access_key_id: AWS access key (or from env)
            aws_secret_access_key: AWS secret key (or from env)
            region_name: AWS region
            endpoint_url: Custom endpoint URL (for MinIO, etc.)
            auto_create_bucket: Create the bucket if it doesn't exist
        """
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.auto_create_bucket = auto_create_bucket

        client_kwargs = {"region_name": region_name}
        if aws_access_key_id:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self._ensure_bucket_exists()
        logger.info(f"S3 client initialized (bucket: {bucket_name})")

    def _ensure_bucket_exists(self):
        """Ensure bucket exists, create if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "403", "NoSuchBucket") or not self.auto_create_bucket:
                logger.error(f"Error checking bucket {self.bucket_name}: {e}")
                raise
            if self.region_name == "us-east-1":
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region_name}
                )
            logger.info(f"Created bucket: {self.bucket_name}")

    def upload_fileobj(
        self,
        file_obj: BinaryIO,
        s3_key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> str:
        """
        Upload a file-like object to S3.

        Returns:
            S3 path of uploaded file (s3://bucket/key)
        """
        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = {str(k): str(v) for k, v in metadata.items()}
        try:
            self.s3_client.upload_fileobj(file_obj, self.bucket_name, s3_key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload file object to S3: {e}")
            raise
        url = f"s3://{self.bucket_name}/{s3_key}"
        logger.info(f"Uploaded file object to S3: {url}")
        return url

    def download_fileobj(self, s3_path: str) -> BytesIO:
        """Download an object (s3:// path or key) into memory."""
        bucket, key = split_s3_path(s3_path)
        file_obj = BytesIO()
        try:
            self.s3_client.download_fileobj(bucket or self.bucket_name, key, file_obj)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to download {s3_path} from S3: {e}")
            raise
        file_obj.seek(0)
        return file_obj

    def delete_file(self, s3_path: str) -> bool:
        """Delete an object (s3:// path or key)."""
        bucket, key = split_s3_path(s3_path)
        try:
            self.s3_client.delete_object(Bucket=bucket or self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete {s3_path} from S3: {e}")
            raise
        logger.info(f"Deleted file from S3: {s3_path}")
        return True

    def get_presigned_url(self, s3_path: str, expiration: int = 3600) -> str:
        """
        Generate a presigned URL for temporary access.

        Args:
            s3_path: s3://bucket/key or a key in the default bucket
            expiration: URL expiration time in seconds (default 1 hour)
        """
        bucket, key = split_s3_path(s3_path)
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket or self.bucket_name, "Key": key},
                ExpiresIn=expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}")
            raise
