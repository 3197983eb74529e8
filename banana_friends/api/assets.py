"""
Asset endpoints: relocation to the FTP host, direct uploads, storage cleanup and image conversion
Storage and FTP work is blocking, so these handlers are plain functions run in the threadpool.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from botocore.exceptions import BotoCoreError, ClientError
from typing import Callable
import logging
from banana_friends.api.dependencies import get_storage_factory, get_uploader_factory
from banana_friends.api.errors import InvalidRequestError, NotFoundError, ServiceError
from banana_friends.api.schemas import (
    TransferRequest, TransferResponse, TransferRecord, ResumeSummaryResponse,
    DirectUploadRequest, DirectUploadResponse, UploadResponse,
    CleanupResponse, ConvertRequest, ConvertResponse
)
from banana_friends.config.settings import Settings, get_settings, STORAGE_SETTING_NAMES, FTP_SETTING_NAMES
from banana_friends.database import get_db, AssetTransfer
from banana_friends.storage.ftp_client import AssetLocation, FTPUploader, generated_location, upload_location
from banana_friends.storage.image_codec import convert_base64_image, decode_base64_image
from banana_friends.storage.s3_client import S3Client
from banana_friends.storage.transfer import AssetTransferService, COMPLETED, FAILED
logger = logging.getLogger(__name__)
router = APIRouter()


def _transfer_service(
    db: Session,
    storage_factory: Callable[[], S3Client],
    uploader_factory: Callable[[], FTPUploader],
    settings: Settings
) -> AssetTransferService:
    return AssetTransferService(db, storage_factory(), uploader_factory(), settings)


def _checked_location(settings: Settings, username: str, filename: str) -> AssetLocation:
    try:
        return generated_location(settings, username, filename)
    except ValueError as e:
        raise InvalidRequestError(str(e))


@router.post("/transfer-to-ftp", response_model=TransferResponse)
@router.post("/transfer-to-boertlay", response_model=TransferResponse, include_in_schema=False)
def transfer_to_ftp(
    request: TransferRequest,
    db: Session = Depends(get_db),
    storage_factory: Callable[[], S3Client] = Depends(get_storage_factory),
    uploader_factory: Callable[[], FTPUploader] = Depends(get_uploader_factory),
    settings: Settings = Depends(get_settings)
):
    """
    Move a generated image from the temp bucket to the public FTP host
    The upload is what counts: if only the source delete fails the request still succeeds.
    """
    logger.info(f"Starting FTP transfer: {request.supabasePath} for {request.username} as {request.filename}")
    _checked_location(settings, request.username, request.filename)
    service = _transfer_service(db, storage_factory, uploader_factory, settings)
    try:
        transfer = service.start(request.supabasePath, request.username, request.filename)
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Transfer process failed: {e}")
        raise ServiceError(
            str(e),
            details="Image transfer to FTP failed",
            debug=settings.presence(STORAGE_SETTING_NAMES + FTP_SETTING_NAMES),
            requestData=request.model_dump(),
        )
    message = "Image transferred successfully to FTP"
    if transfer.state != COMPLETED:
        message += " (source cleanup pending)"
    return TransferResponse(publicUrl=transfer.public_url, transferId=transfer.id, message=message)


@router.get("/transfers/{transfer_id}", response_model=TransferRecord)
def get_transfer(transfer_id: str, db: Session = Depends(get_db)):
    record = db.get(AssetTransfer, transfer_id)
    if record is None:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    return record


@router.post("/transfers/resume", response_model=ResumeSummaryResponse)
def resume_transfers(
    db: Session = Depends(get_db),
    storage_factory: Callable[[], S3Client] = Depends(get_storage_factory),
    uploader_factory: Callable[[], FTPUploader] = Depends(get_uploader_factory),
    settings: Settings = Depends(get_settings)
):
    """Resume every transfer that has not completed"""
    service = _transfer_service(db, storage_factory, uploader_factory, settings)
    records = service.resume_incomplete()
    completed = sum(1 for record in records if record.state == COMPLETED)
    failed = sum(1 for record in records if record.state == FAILED)
    logger.info(f"Resumed {len(records)} transfers: {completed} completed, {failed} failed")
    return ResumeSummaryResponse(
        resumed=len(records),
        completed=completed,
        failed=failed,
        transfers=[TransferRecord.model_validate(record) for record in records],
    )


@router.post("/transfers/{transfer_id}/resume", response_model=TransferRecord)
def resume_transfer(
    transfer_id: str,
    db: Session = Depends(get_db),
    storage_factory: Callable[[], S3Client] = Depends(get_storage_factory),
    uploader_factory: Callable[[], FTPUploader] = Depends(get_uploader_factory),
    settings: Settings = Depends(get_settings)
):
    service = _transfer_service(db, storage_factory, uploader_factory, settings)
    try:
        return service.resume(transfer_id)
    except ServiceError:
        raise
    except Exception as e:
        raise ServiceError(str(e), details="Image transfer to FTP failed", transferId=transfer_id)


@router.post("/direct-ftp-upload", response_model=DirectUploadResponse)
def direct_ftp_upload(
    request: DirectUploadRequest,
    uploader_factory: Callable[[], FTPUploader] = Depends(get_uploader_factory),
    settings: Settings = Depends(get_settings)
):
    """Upload a base64 image straight to the dated user directory on the FTP host"""
    logger.info(f"Starting direct FTP upload for {request.username} as {request.filename}")
    image = decode_base64_image(request.base64Image)
    logger.info(f"Decoded image: {len(image)} bytes")
    location = _checked_location(settings, request.username, request.filename)
    uploader = uploader_factory()
    try:
        uploader.upload(image, location.remote_dir, request.filename)
    except Exception as e:
        logger.error(f"Direct FTP upload failed: {e}")
        raise ServiceError(
            f"FTP operation failed: {e}",
            details="Direct FTP upload failed",
            debug=settings.presence(FTP_SETTING_NAMES),
            requestData={"username": request.username, "filename": request.filename, "hasBase64": True},
        )
    return DirectUploadResponse(
        publicUrl=location.public_url,
        message="Image uploaded successfully to FTP",
        fileSize=len(image),
    )


@router.post("/upload-image", response_model=UploadResponse)
def upload_image(
    file: UploadFile = File(...),
    path: str = Form(...),
    filename: str = Form(...),
    uploader_factory: Callable[[], FTPUploader] = Depends(get_uploader_factory),
    settings: Settings = Depends(get_settings)
):
    """Upload a multipart file into a directory below the FTP root"""
    try:
        location = upload_location(settings, path, filename)
    except ValueError as e:
        raise InvalidRequestError(str(e))
    data = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise InvalidRequestError("File too large", status_code=413)
    uploader = uploader_factory()
    try:
        uploader.upload(data, location.remote_dir, filename)
    except Exception as e:
        logger.error(f"FTP upload failed: {e}")
        raise ServiceError("FTP upload failed", details=str(e))
    return UploadResponse(url=location.public_url, message="File uploaded successfully")


@router.post("/cleanup-storage", response_model=CleanupResponse, response_model_exclude_none=True)
def cleanup_storage(storage_factory: Callable[[], S3Client] = Depends(get_storage_factory)):
    """Empty the temp bucket and try to delete it"""
    storage = storage_factory()
    logger.info(f"Starting storage cleanup of {storage.bucket_name}")
    try:
        keys = storage.list_files()
    except (ClientError, BotoCoreError) as e:
        logger.info(f"Cannot list bucket contents: {e}")
        return CleanupResponse(message="Bucket already cleaned or does not exist", error=str(e))

    logger.info(f"Found {len(keys)} files in {storage.bucket_name}")
    deleted = storage.delete_files(keys)
    try:
        storage.delete_bucket()
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Could not delete bucket: {e}")
        return CleanupResponse(
            message="Files cleaned, but bucket deletion requires admin access",
            filesDeleted=deleted,
            bucketError=str(e),
        )
    return CleanupResponse(
        message="Storage completely cleaned up",
        filesDeleted=deleted,
        bucketDeleted=True,
    )


@router.post("/convert-to-avif", response_model=ConvertResponse)
def convert_to_avif(request: ConvertRequest):
    """Re-encode a base64 image as AVIF, or WebP/JPEG when AVIF is unavailable"""
    return convert_base64_image(request.base64Image, request.quality)
