import ftplib
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "banana_friends_test.log"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from banana_friends.api.dependencies import get_session_factory, get_storage_factory, get_uploader_factory
from banana_friends.config.settings import Settings, get_settings
from banana_friends.database import Base, CommunityPrompt, get_db
from banana_friends.main import app
from banana_friends.storage.ftp_client import FTPUploader


class FakeStorage:
    """In-memory stand-in for S3Client"""

    def __init__(self, objects=None, bucket_name="temp-uploads", delete_fails=False):
        self.bucket_name = bucket_name
        self.objects = dict(objects or {})
        self.delete_fails = delete_fails
        self.deleted = []

    def download_file(self, key):
        if key not in self.objects:
            raise FileNotFoundError(f"{self.bucket_name}/{key} does not exist")
        return self.objects[key]

    def delete_file(self, key):
        if self.delete_fails:
            return False
        self.objects.pop(key, None)
        self.deleted.append(key)
        return True


class FakeFTP:
    """Records what an FTPUploader does with its session"""
    instances = []

    def __init__(self):
        self.dirs = {"/"}
        self.cwd_path = "/"
        self.files = {}
        self.closed = False
        self.fail_on_store = False
        FakeFTP.instances.append(self)

    def connect(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def login(self, user, password):
        self.user = user

    def _resolve(self, segment):
        if segment == "/":
            return "/"
        return self.cwd_path.rstrip("/") + "/" + segment

    def cwd(self, segment):
        path = self._resolve(segment)
        if path not in self.dirs:
            raise ftplib.error_perm(f"550 {path}: No such directory")
        self.cwd_path = path

    def mkd(self, segment):
        path = self._resolve(segment)
        self.dirs.add(path)
        return path

    def storbinary(self, command, fp):
        if self.fail_on_store:
            raise ftplib.error_temp("451 Upload aborted")
        filename = command.split(" ", 1)[1]
        self.files[self._resolve(filename)] = fp.read()

    def quit(self):
        self.closed = True

    def close(self):
        self.closed = True


class FailingFTP(FakeFTP):
    def __init__(self):
        super().__init__()
        self.fail_on_store = True


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        KIE_AI_API_KEY="kie-key",
        SEEDREAM_API_KEY="seedream-key",
        KLING_ACCESS_KEY="kling-access",
        KLING_SECRET_KEY="kling-secret",
        SUPABASE_URL="https://project.supabase.co",
        STORAGE_ACCESS_KEY_ID="storage-key",
        STORAGE_SECRET_ACCESS_KEY="storage-secret",
        FTP_HOST="ftp.example.com",
        FTP_USER="uploader",
        FTP_PASSWORD="ftp-password",
        FTP_BASE_URL="https://pics.example.com",
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def storage():
    return FakeStorage({"uploads/img.png": b"\x89PNG image bytes"})


@pytest.fixture(autouse=True)
def reset_fake_ftp():
    FakeFTP.instances = []
    yield


@pytest.fixture
def client(settings, db_session, storage):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_storage_factory] = lambda: (lambda: storage)
    app.dependency_overrides[get_uploader_factory] = lambda: (lambda: FTPUploader(settings, ftp_factory=FakeFTP))
    app.dependency_overrides[get_session_factory] = lambda: (lambda: db_session)
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def add_prompt(db_session):
    def _add(**fields):
        values = {"title": "Portrait", "prompt": "A portrait in soft light", "category": "Portrait", "likes": 0}
        values.update(fields)
        prompt = CommunityPrompt(**values)
        db_session.add(prompt)
        db_session.commit()
        db_session.refresh(prompt)
        return prompt
    return _add
