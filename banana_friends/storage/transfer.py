"""
Relocation of generated images from the temp bucket to the FTP host

Each transfer is tracked by an AssetTransfer row so an interrupted move can be
resumed instead of leaving an orphaned copy behind:

    pending  -> download + upload -> uploaded -> delete source -> completed
    pending  -> download or upload fails -> failed (source left intact)

A failed delete keeps the transfer in "uploaded" with cleanup_error set; the
FTP copy is authoritative from that point on.
"""
import logging
import posixpath
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from banana_friends.api.errors import NotFoundError
from banana_friends.config.settings import Settings
from banana_friends.database.models import AssetTransfer
from banana_friends.storage.ftp_client import FTPUploader, generated_location
from banana_friends.storage.s3_client import S3Client

logger = logging.getLogger(__name__)

PENDING = "pending"
UPLOADED = "uploaded"
COMPLETED = "completed"
FAILED = "failed"


class AssetTransferService:
    """Runs and resumes storage-to-FTP transfers"""

    def __init__(self, db: Session, storage: S3Client, uploader: FTPUploader, settings: Settings):
        self.db = db
        self.storage = storage
        self.uploader = uploader
        self.settings = settings

    def start(self, source_path: str, username: str, filename: str, now: Optional[datetime] = None) -> AssetTransfer:
        """
        Record the intent and carry the transfer as far as it goes
        Args:
            source_path: Object key inside the temp bucket
            username: Owner of the image, part of the public path
            filename: Name of the file on the FTP host
            now: Clock used for the dated directory (UTC now by default)
        Returns:
            The AssetTransfer row in state uploaded or completed
        Raises:
            Whatever the download or upload raised; the row is left in state failed
        """
        location = generated_location(self.settings, username, filename, now)
        record = AssetTransfer(
            source_bucket=self.storage.bucket_name,
            source_path=source_path,
            username=username,
            filename=filename,
            remote_path=location.remote_path,
            public_url=location.public_url,
            state=PENDING,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Transfer {record.id} created: {source_path} -> {location.remote_path}")
        return self._advance(record)

    def get(self, transfer_id: str) -> AssetTransfer:
        record = self.db.get(AssetTransfer, transfer_id)
        if record is None:
            raise NotFoundError(f"Transfer {transfer_id} not found")
        return record

    def resume(self, transfer_id: str) -> AssetTransfer:
        record = self.get(transfer_id)
        if record.state == COMPLETED:
            logger.info(f"Transfer {record.id} already completed")
            return record
        logger.info(f"Resuming transfer {record.id} from state {record.state}")
        return self._advance(record)

    def incomplete(self) -> List[AssetTransfer]:
        return (
            self.db.query(AssetTransfer)
            .filter(AssetTransfer.state != COMPLETED)
            .order_by(AssetTransfer.created_at)
            .all()
        )

    def resume_incomplete(self) -> List[AssetTransfer]:
        """Resume every transfer that has not completed; one failure does not stop the rest"""
        records = self.incomplete()
        for record in records:
            try:
                self._advance(record)
            except Exception as e:
                logger.error(f"Transfer {record.id} could not be resumed: {e}")
        return records

    def _advance(self, record: AssetTransfer) -> AssetTransfer:
        if record.state in (PENDING, FAILED):
            self._copy(record)
        if record.state == UPLOADED:
            self._remove_source(record)
        return record

    def _copy(self, record: AssetTransfer) -> None:
        try:
            data = self.storage.download_file(record.source_path)
            self.uploader.upload(data, posixpath.dirname(record.remote_path) + "/", record.filename)
        except Exception as e:
            record.state = FAILED
            record.error = str(e)
            self.db.commit()
            logger.error(f"Transfer {record.id} failed, source left in place: {e}")
            raise
        record.state = UPLOADED
        record.error = None
        self.db.commit()
        logger.info(f"Transfer {record.id} uploaded: {record.public_url}")

    def _remove_source(self, record: AssetTransfer) -> None:
        if self.storage.delete_file(record.source_path):
            record.state = COMPLETED
            record.cleanup_error = None
            logger.info(f"Transfer {record.id} completed")
        else:
            record.cleanup_error = f"Could not delete {record.source_bucket}/{record.source_path}"
            logger.warning(f"Transfer {record.id}: {record.cleanup_error}, keeping FTP copy")
        self.db.commit()
