"""
Asynchronous Gemini generation queue

A generation is stored before any upstream call and the client gets its id at
once; the Gemini call runs after the response has been sent, so a phone that
locks mid-generation can still pick up the result by polling:

    processing -> Gemini returns an image or text -> completed
    processing -> Gemini fails or blocks the prompt -> failed -> retry -> processing
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session
from banana_friends.api.errors import AuthenticationError, InvalidRequestError, NotFoundError
from banana_friends.database.models import Generation, User
from banana_friends.providers.gemini import GeminiClient, GeminiResult

logger = logging.getLogger(__name__)

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
# result_base64 holds the image itself
BASE64_STORED = "base64_stored"

ClientFactory = Callable[[str], GeminiClient]


def authenticate_user(db: Session, user_id: str) -> User:
    """The user must exist, be active and have a Gemini key of their own"""
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Authentication failed: User not found or invalid")
    if not user.gemini_api_key:
        raise AuthenticationError("Authentication failed: User has no Gemini API key configured")
    return user


class GenerationQueue:
    """Creates, retries and processes queued generations"""

    def __init__(self, session_factory: Callable[[], Session], client_factory: ClientFactory):
        self.session_factory = session_factory
        self.client_factory = client_factory

    def get(self, db: Session, generation_id: str, user_id: str) -> Generation:
        generation = (
            db.query(Generation)
            .filter(Generation.id == generation_id, Generation.user_id == user_id)
            .first()
        )
        if generation is None:
            raise NotFoundError("Generation not found")
        return generation

    def start(self, db: Session, user: User, prompt: str, resolution: str, aspect_ratio: str,
              main_face_image_url: Optional[str] = None,
              additional_images: Optional[List[Dict[str, Any]]] = None) -> Generation:
        generation = Generation(
            user_id=user.id,
            prompt=prompt,
            resolution=resolution,
            aspect_ratio=aspect_ratio,
            main_face_image_url=main_face_image_url,
            additional_images=additional_images or [],
            status=PROCESSING,
            started_at=datetime.utcnow(),
        )
        db.add(generation)
        db.commit()
        db.refresh(generation)
        logger.info(f"Generation {generation.id} queued for user {user.id}")
        return generation

    def retry(self, db: Session, generation: Generation) -> Generation:
        if generation.status == PROCESSING:
            raise InvalidRequestError("Generation is still processing")
        generation.status = PROCESSING
        generation.error_message = None
        generation.result_base64 = None
        generation.result_image_url = None
        generation.retry_count = (generation.retry_count or 0) + 1
        generation.started_at = datetime.utcnow()
        generation.completed_at = None
        db.commit()
        logger.info(f"Generation {generation.id} retry {generation.retry_count} queued")
        return generation

    async def process(self, generation_id: str, api_key: str) -> None:
        """
        Run one queued generation to completion in its own session
        Every outcome is written to the row; nothing is raised to the caller.
        """
        db = self.session_factory()
        try:
            generation = db.get(Generation, generation_id)
            if generation is None:
                logger.error(f"Generation {generation_id} disappeared before processing")
                return
            logger.info(f"Starting background generation {generation_id}")
            try:
                result = await self.client_factory(api_key).generate(
                    generation.prompt,
                    generation.resolution,
                    generation.aspect_ratio,
                    generation.main_face_image_url,
                    generation.additional_images,
                )
            except Exception as e:
                logger.error(f"Background generation {generation_id} crashed: {e}")
                self._fail(db, generation, f"Unexpected error: {e}")
                return
            if result.success:
                self._complete(db, generation, result)
            else:
                self._fail(db, generation, result.error)
        finally:
            db.close()

    def _finish(self, db: Session, generation: Generation, status: str) -> None:
        generation.status = status
        generation.completed_at = datetime.utcnow()
        if generation.started_at:
            generation.generation_time_seconds = (generation.completed_at - generation.started_at).total_seconds()
        db.commit()

    def _complete(self, db: Session, generation: Generation, result: GeminiResult) -> None:
        generation.result_base64 = result.image
        generation.result_image_url = BASE64_STORED if result.image else None
        generation.gemini_metadata = {**result.metadata, "usageMetadata": result.usage}
        self._finish(db, generation, COMPLETED)
        logger.info(f"Generation {generation.id} completed in {generation.generation_time_seconds}s")

    def _fail(self, db: Session, generation: Generation, error: Optional[str]) -> None:
        generation.error_message = error
        self._finish(db, generation, FAILED)
        logger.warning(f"Generation {generation.id} failed: {error}")
