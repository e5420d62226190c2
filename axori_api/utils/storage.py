"""Document storage on S3"""
import logging
import re
import uuid

import boto3
from botocore.exceptions import ClientError
from flask import current_app

from axori_api.utils.errors import ApiError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = (
    'application/pdf',
    'image/png', 'image/jpeg', 'image/jpg', 'image/webp', 'image/heic', 'image/gif',
)
MAX_PDF_BYTES = 25 * 1024 * 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024


def get_s3_client():
    """Get S3 client"""
    return boto3.client('s3', region_name=current_app.config.get('AWS_REGION'))


def get_bucket():
    bucket = current_app.config.get('S3_BUCKET')
    if not bucket:
        raise ApiError('File storage not configured', 503)
    return bucket


def sanitize_filename(filename):
    cleaned = re.sub(r'[^A-Za-z0-9._-]+', '_', filename or 'document').strip('._')
    return cleaned[:120] or 'document'


def build_storage_path(user_id, property_id, filename):
    return f'{user_id}/{property_id}/{uuid.uuid4().hex}_{sanitize_filename(filename)}'


def validate_upload(mime_type, size_bytes):
    """Raise 400 for unsupported types and oversized files"""
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ApiError('Validation failed', 400, {
            'file': f"Unsupported file type {mime_type}. Allowed: {', '.join(ALLOWED_MIME_TYPES)}"
        })
    limit = MAX_PDF_BYTES if mime_type == 'application/pdf' else MAX_IMAGE_BYTES
    if size_bytes is not None and size_bytes > limit:
        raise ApiError('Validation failed', 400, {
            'file': f'File is too large. Maximum size is {limit // (1024 * 1024)}MB'
        })


def upload_file(storage_path, data, mime_type):
    get_s3_client().put_object(Bucket=get_bucket(), Key=storage_path, Body=data, ContentType=mime_type)
    logger.info(f"Uploaded {storage_path} ({len(data)} bytes)")


def download_file(storage_path):
    response = get_s3_client().get_object(Bucket=get_bucket(), Key=storage_path)
    return response['Body'].read()


def delete_file(storage_path):
    """Delete an object; returns False (logged) when S3 refuses"""
    try:
        get_s3_client().delete_object(Bucket=get_bucket(), Key=storage_path)
    except ClientError as e:
        logger.error(f"Failed to delete {storage_path} from storage: {e}")
        return False
    return True


def generate_presigned_url(storage_path, expires_in=None):
    """Time-limited download link"""
    expires_in = expires_in or current_app.config.get('S3_PRESIGNED_URL_EXPIRES', 3600)
    try:
        return get_s3_client().generate_presigned_url(
            'get_object',
            Params={'Bucket': get_bucket(), 'Key': storage_path},
            ExpiresIn=expires_in
        )
    except ClientError as e:
        logger.error(f"Could not sign download URL for {storage_path}: {e}")
        return None


def generate_presigned_upload_url(storage_path, mime_type, expires_in=None):
    """Time-limited PUT link for direct browser uploads"""
    expires_in = expires_in or current_app.config.get('S3_PRESIGNED_URL_EXPIRES', 3600)
    return get_s3_client().generate_presigned_url(
        'put_object',
        Params={'Bucket': get_bucket(), 'Key': storage_path, 'ContentType': mime_type},
        ExpiresIn=expires_in
    )
