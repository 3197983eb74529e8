"""
Queued Gemini generations: start, poll, list and retry
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging
from banana_friends.api.dependencies import get_generation_queue
from banana_friends.api.errors import InvalidRequestError
from banana_friends.api.schemas import (
    GenerationResult, GenerationRetryRequest, GenerationRetryResponse, GenerationStartRequest,
    GenerationStartResponse, GenerationStatusResponse, GenerationSummary, UserGenerationsResponse
)
from banana_friends.database import get_db, Generation
from banana_friends.generation.queue import COMPLETED, FAILED, PROCESSING, GenerationQueue, authenticate_user
logger = logging.getLogger(__name__)
router = APIRouter()

RESULT_TEXT = "Image generated successfully!"


def _result(generation: Generation, with_text: bool = False) -> Optional[GenerationResult]:
    if generation.status != COMPLETED:
        return None
    return GenerationResult(
        text=RESULT_TEXT if with_text else None,
        image=generation.result_base64,
        generation_time_seconds=generation.generation_time_seconds,
    )


@router.post("/generations/start", response_model=GenerationStartResponse, status_code=202)
def start_generation(
    request: GenerationStartRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    queue: GenerationQueue = Depends(get_generation_queue)
):
    """Store the generation and answer 202 at once; Gemini runs after the response"""
    user = authenticate_user(db, request.user_id)
    generation = queue.start(
        db,
        user,
        request.prompt,
        request.resolution,
        request.aspect_ratio,
        request.main_face_image_url,
        [image.model_dump(exclude_none=True) for image in request.additional_images],
    )
    background_tasks.add_task(queue.process, generation.id, user.gemini_api_key)
    return GenerationStartResponse(
        generation_id=generation.id,
        status=PROCESSING,
        message="Generation started successfully",
        created_at=generation.created_at,
    )


@router.get("/generations/user/{user_id}", response_model=UserGenerationsResponse)
def user_generations(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Most recent generations of one user, newest first"""
    query = db.query(Generation).filter(Generation.user_id == user_id)
    if status:
        query = query.filter(Generation.status == status)
    generations = query.order_by(Generation.created_at.desc(), Generation.started_at.desc()).limit(limit).all()
    return UserGenerationsResponse(
        generations=[
            GenerationSummary(
                id=generation.id,
                prompt=generation.prompt,
                resolution=generation.resolution,
                aspect_ratio=generation.aspect_ratio,
                status=generation.status,
                result=_result(generation),
                error=generation.error_message if generation.status == FAILED else None,
                created_at=generation.created_at,
                completed_at=generation.completed_at,
            )
            for generation in generations
        ],
        total=len(generations),
    )


@router.get("/generations/{generation_id}/status", response_model=GenerationStatusResponse,
            response_model_exclude_none=True)
def generation_status(
    generation_id: str,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    queue: GenerationQueue = Depends(get_generation_queue)
):
    if not user_id:
        raise InvalidRequestError("Missing user_id parameter")
    generation = queue.get(db, generation_id, user_id)
    return GenerationStatusResponse(
        id=generation.id,
        status=generation.status,
        created_at=generation.created_at,
        started_at=generation.started_at,
        completed_at=generation.completed_at,
        result=_result(generation, with_text=True),
        metadata=generation.gemini_metadata if generation.status == COMPLETED else None,
        error=generation.error_message if generation.status == FAILED else None,
    )


@router.post("/generations/{generation_id}/retry", response_model=GenerationRetryResponse)
def retry_generation(
    generation_id: str,
    background_tasks: BackgroundTasks,
    request: Optional[GenerationRetryRequest] = None,
    db: Session = Depends(get_db),
    queue: GenerationQueue = Depends(get_generation_queue)
):
    """Requeue a finished generation with the prompt and images it was started with"""
    user_id = request.user_id if request else None
    if not user_id:
        raise InvalidRequestError("Missing user_id")
    generation = queue.get(db, generation_id, user_id)
    user = authenticate_user(db, user_id)
    queue.retry(db, generation)
    background_tasks.add_task(queue.process, generation.id, user.gemini_api_key)
    return GenerationRetryResponse(message="Generation retry started", status=PROCESSING)
