# storage.py
import mimetypes
import os
import uuid
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from werkzeug.utils import secure_filename

from errors import StorageError
from models import UploadedFile

# Checked before mimetypes
MIME_TYPES = {
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'xls': 'application/vnd.ms-excel',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'doc': 'application/msword',
    'pdf': 'application/pdf',
    'txt': 'text/plain',
    'md': 'text/markdown',
    'csv': 'text/csv',
    'json': 'application/json',
    'xml': 'application/xml',
    'zip': 'application/zip',
    'rar': 'application/x-rar-compressed',
}


def guess_content_type(filename):
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or 'application/octet-stream'


class ObjectStorage:
    """Thin wrapper over an S3 (or S3-compatible) bucket."""

    def __init__(self, settings, client=None):
        self.bucket = settings.s3_bucket
        self.region = settings.aws_region
        self.endpoint_url = settings.s3_endpoint_url or None
        self.prefix = settings.s3_prefix
        self.public_read = settings.s3_public_read
        self.url_expires = settings.s3_url_expires

        if client is None:
            # single attempt
            client = boto3.client(
                's3',
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                config=Config(retries={"max_attempts": 1, "mode": "standard"}),
            )
        self.client = client

    def object_key(self, filename):
        safe_name = secure_filename(filename) or "file"
        return f"{self.prefix}{uuid.uuid4().hex}/{safe_name}"

    def public_url(self, key):
        quoted = quote(key)
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    def direct_url(self, key, filename):
        return self.client.generate_presigned_url(
            'get_object',
            Params={
                'Bucket': self.bucket,
                'Key': key,
                'ResponseContentDisposition': f'attachment; filename="{secure_filename(filename) or "file"}"',
            },
            ExpiresIn=self.url_expires,
        )

    def _make_public(self, key):
        try:
            self.client.put_object_acl(Bucket=self.bucket, Key=key, ACL='public-read')
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in ('AccessControlListNotSupported', 'AccessDenied'):
                # ACLs disabled on the bucket
                logger.warning(f"Could not make {key} public ({code}), relying on presigned URL")
                return
            raise

    def upload_file(self, path, filename, content_type=None):
        with open(path, "rb") as f:
            return self._put(f, os.path.getsize(path), filename, content_type)

    def upload_bytes(self, data, filename, content_type=None):
        return self._put(data, len(data), filename, content_type)

    def _put(self, body, size, filename, content_type=None):
        key = self.object_key(filename)
        content_type = content_type or guess_content_type(filename)

        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
            if self.public_read:
                self._make_public(key)
            direct_url = self.direct_url(key, filename)
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Upload of {filename} to s3://{self.bucket} failed: {e}")
            raise StorageError(f"Object storage upload failed: {e}") from e

        logger.info(f"Uploaded {filename} to s3://{self.bucket}/{key}")
        return UploadedFile(
            name=filename,
            size=size,
            file_id=key,
            public_url=self.public_url(key),
            direct_url=direct_url,
        )

    def delete_file(self, key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Object storage delete failed: {e}") from e
        logger.info(f"Deleted s3://{self.bucket}/{key}")
