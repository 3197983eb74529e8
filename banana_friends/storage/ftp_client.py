"""
FTP client for the public image host
"""
import ftplib
import io
import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from banana_friends.config.settings import Settings, FTP_SETTING_NAMES
from banana_friends.api.errors import ConfigurationError

logger = logging.getLogger(__name__)

GENERATED_DIR = "user_pics/generated"


def check_path_segment(value: str, field: str) -> str:
    """A single directory or file name; raises ValueError for anything that could leave its parent"""
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"Invalid {field}: {value}")
    return value


@dataclass
class AssetLocation:
    """Where a generated image lives on the FTP host and on the web"""
    remote_dir: str
    remote_path: str
    public_url: str


def generated_location(settings: Settings, username: str, filename: str, now: Optional[datetime] = None) -> AssetLocation:
    """
    Dated location of a user's generated image: .../generated/{username}/{YYYY}/{MM}/{filename}
    The month is taken in UTC and zero padded.
    Raises:
        ValueError when username or filename is not a single path segment
    """
    check_path_segment(username, "username")
    check_path_segment(filename, "filename")
    now = now or datetime.now(timezone.utc)
    dated = f"{GENERATED_DIR}/{username}/{now.year}/{now.month:02d}"
    root = settings.FTP_ROOT_DIR.rstrip("/")
    remote_dir = f"{root}/{dated}/"
    base_url = (settings.FTP_BASE_URL or "").rstrip("/")
    return AssetLocation(
        remote_dir=remote_dir,
        remote_path=remote_dir + filename,
        public_url=f"{base_url}/{dated}/{filename}",
    )


def upload_location(settings: Settings, path: str, filename: str) -> AssetLocation:
    """
    Location of a file uploaded into a caller-chosen directory below the FTP root
    Raises:
        ValueError when path or filename try to leave that directory
    """
    segments = [part for part in path.split("/") if part]
    if ".." in segments:
        raise ValueError(f"Invalid upload path: {path}")
    check_path_segment(filename, "filename")
    relative = "/".join(segments)
    root = settings.FTP_ROOT_DIR.rstrip("/")
    remote_dir = f"{root}/{relative}/" if relative else f"{root}/"
    base_url = (settings.FTP_BASE_URL or "").rstrip("/")
    public_path = f"{relative}/{filename}" if relative else filename
    return AssetLocation(
        remote_dir=remote_dir,
        remote_path=remote_dir + filename,
        public_url=f"{base_url}/{public_path}",
    )


class FTPUploader:
    """Uploads byte payloads to the FTP host, one session per upload"""

    def __init__(self, settings: Settings, ftp_factory: Callable[..., ftplib.FTP] = ftplib.FTP):
        missing = [name for name, present in settings.presence(FTP_SETTING_NAMES).items() if not present]
        if missing:
            raise ConfigurationError(
                f"Missing FTP credentials: {', '.join(missing)}",
                debug=settings.presence(FTP_SETTING_NAMES),
            )
        self.settings = settings
        self.ftp_factory = ftp_factory

    def _connect(self) -> ftplib.FTP:
        logger.info(f"Connecting to FTP {self.settings.FTP_HOST}:{self.settings.FTP_PORT} as {self.settings.FTP_USER}")
        ftp = self.ftp_factory()
        ftp.connect(self.settings.FTP_HOST, self.settings.FTP_PORT, timeout=self.settings.FTP_TIMEOUT_SECONDS)
        ftp.login(self.settings.FTP_USER, self.settings.FTP_PASSWORD)
        return ftp

    @staticmethod
    def ensure_dir(ftp: ftplib.FTP, remote_dir: str) -> None:
        """Create every missing segment of remote_dir and leave the session inside it"""
        if remote_dir.startswith("/"):
            ftp.cwd("/")
        for segment in [part for part in remote_dir.split("/") if part]:
            try:
                ftp.cwd(segment)
            except ftplib.error_perm:
                ftp.mkd(segment)
                ftp.cwd(segment)

    def upload(self, data: bytes, remote_dir: str, filename: str) -> str:
        """
        Upload bytes into remote_dir, creating it when absent
        Returns:
            Full remote path of the stored file
        Raises:
            ftplib.all_errors on connection or protocol failures; the session is closed either way
        """
        remote_path = posixpath.join(remote_dir, filename)
        ftp = self._connect()
        try:
            logger.info(f"Ensuring FTP directory {remote_dir}")
            self.ensure_dir(ftp, remote_dir)
            ftp.storbinary(f"STOR {filename}", io.BytesIO(data))
            logger.info(f"Uploaded {len(data)} bytes to {remote_path}")
        finally:
            self._close(ftp)
        return remote_path

    @staticmethod
    def _close(ftp: ftplib.FTP) -> None:
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()
