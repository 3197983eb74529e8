"""
FastAPI dependencies that build per-request clients from the settings
"""
from typing import Callable
from fastapi import Depends
from sqlalchemy.orm import Session
from banana_friends.config.settings import Settings, get_settings
from banana_friends.database import SessionLocal
from banana_friends.generation.queue import GenerationQueue
from banana_friends.providers import GeminiClient, KieAIClient, KlingClient, SeedreamClient
from banana_friends.storage.ftp_client import FTPUploader
from banana_friends.storage.s3_client import S3Client


def get_kie_client(settings: Settings = Depends(get_settings)) -> KieAIClient:
    return KieAIClient(settings)


def get_seedream_client(settings: Settings = Depends(get_settings)) -> SeedreamClient:
    return SeedreamClient(settings)


def get_kling_client(settings: Settings = Depends(get_settings)) -> KlingClient:
    return KlingClient(settings)


# Storage and FTP clients check their credentials on construction, so handlers
# receive factories and build them after the request body has been validated.
def get_storage_factory(settings: Settings = Depends(get_settings)) -> Callable[[], S3Client]:
    return lambda: S3Client(settings)


def get_uploader_factory(settings: Settings = Depends(get_settings)) -> Callable[[], FTPUploader]:
    return lambda: FTPUploader(settings)


# The queue worker outlives the request, so it opens sessions of its own
def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_gemini_client_factory(settings: Settings = Depends(get_settings)) -> Callable[[str], GeminiClient]:
    return lambda api_key: GeminiClient(settings, api_key)


def get_generation_queue(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    client_factory: Callable[[str], GeminiClient] = Depends(get_gemini_client_factory)
) -> GenerationQueue:
    return GenerationQueue(session_factory, client_factory)
