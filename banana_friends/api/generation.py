"""
Proxy endpoints for the upstream generation services (KIE.AI, Seedream, Kling AI)
The browser never sees a provider credential: each handler attaches the
server-held key and forwards the body unchanged.
"""
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging
from banana_friends.api.dependencies import get_kie_client, get_kling_client, get_seedream_client
from banana_friends.api.errors import InvalidRequestError
from banana_friends.api.schemas import KieUploadRequest, KieUploadResponse, TaskStatusResponse
from banana_friends.providers import KieAIClient, KlingClient, SeedreamClient
logger = logging.getLogger(__name__)
router = APIRouter()


# KIE.AI
@router.post("/kie-ai-generate")
async def kie_ai_generate(body: Dict[str, Any] = Body(...), client: KieAIClient = Depends(get_kie_client)):
    """Start a Nano-Banana image task; the upstream body is returned as is"""
    return await client.create_task(body)


@router.post("/kie-ai-veo")
async def kie_ai_veo(body: Dict[str, Any] = Body(...), client: KieAIClient = Depends(get_kie_client)):
    """Start a VEO video task"""
    return await client.generate_video(body)


@router.get("/kie-ai-status", response_model=TaskStatusResponse)
async def kie_ai_status(
    taskId: Optional[str] = None,
    type: Optional[str] = None,
    client: KieAIClient = Depends(get_kie_client)
):
    """
    Status of an image or video task
    Video tasks are recognized by type=veo or a veo_ task id prefix.
    """
    if not taskId:
        raise InvalidRequestError("TaskId is required")
    return await client.task_status(taskId, type)


@router.post("/kie-ai-upload", response_model=KieUploadResponse)
async def kie_ai_upload(request: KieUploadRequest, client: KieAIClient = Depends(get_kie_client)):
    """Upload a base64 file to KIE.AI storage so it can be referenced by URL"""
    return await client.upload_base64(request.base64Data, request.fileName, request.uploadPath)


# Seedream
@router.post("/seedream-generate")
async def seedream_generate(body: Dict[str, Any] = Body(...), client: SeedreamClient = Depends(get_seedream_client)):
    return await client.generate(body)


# Kling AI
@router.post("/kling-proxy/generate")
async def kling_generate(body: Dict[str, Any] = Body(...), client: KlingClient = Depends(get_kling_client)):
    """Start an image-to-video task"""
    return await client.generate(body)


@router.get("/kling-proxy/status/{task_id}")
async def kling_status(task_id: str, client: KlingClient = Depends(get_kling_client)):
    return await client.task_status(task_id)


@router.get("/kling-proxy/credits")
async def kling_credits(client: KlingClient = Depends(get_kling_client)):
    return await client.credits()


@router.api_route("/kling-proxy/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def kling_unknown(path: str):
    logger.warning(f"Unknown Kling proxy endpoint: {path}")
    return JSONResponse(status_code=404, content={"error": "Unknown endpoint"})
