"""
KIE.AI client: Nano-Banana image tasks, VEO video tasks, status checks and uploads
"""
import json
import logging
import time
from typing import Any, Dict, Optional
from banana_friends.api.errors import ConfigurationError, UpstreamError
from banana_friends.providers.upstream import UpstreamClient, UpstreamResponse, error_details, error_message

logger = logging.getLogger(__name__)

VIDEO_TASK_PREFIX = "veo_"


def is_video_task(task_id: str, task_type: Optional[str] = None) -> bool:
    return task_type == "veo" or task_id.startswith(VIDEO_TASK_PREFIX)


def _video_state(success_flag: Any) -> str:
    if success_flag == 1:
        return "success"
    if success_flag == 0:
        return "generating"
    return "failed"


def _parse_result_urls(result_json: Any) -> Optional[list]:
    if not result_json:
        return None
    try:
        parsed = json.loads(result_json) if isinstance(result_json, str) else result_json
    except ValueError:
        logger.warning("KIE.AI resultJson is not valid JSON")
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed.get("resultUrls")


def normalize_task_status(task_id: str, payload: Dict[str, Any], task_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Unify image and video task status responses into one shape
    Args:
        task_id: Task identifier as submitted by the client
        payload: Raw JSON returned by the KIE.AI status endpoint
        task_type: Optional explicit type ("veo" for video tasks)
    Returns:
        {success, state, resultUrls, data}
    """
    task = payload.get("data") or {}
    if is_video_task(task_id, task_type):
        state = _video_state(task.get("successFlag"))
        result_urls = (task.get("response") or {}).get("resultUrls")
    else:
        state = task.get("state")
        result_urls = _parse_result_urls(task.get("resultJson"))
    return {
        "success": True,
        "state": state,
        "resultUrls": result_urls,
        "data": payload,
    }


class KieAIClient(UpstreamClient):
    """KIE.AI API proxy client"""
    service_name = "KIE.AI"

    def _auth_headers(self) -> Dict[str, str]:
        if not self.settings.KIE_AI_API_KEY:
            raise ConfigurationError("KIE.AI API Key not configured")
        return {"Authorization": f"Bearer {self.settings.KIE_AI_API_KEY}"}

    @property
    def base_url(self) -> str:
        return self.settings.KIE_AI_API_URL.rstrip("/")

    def _raise_for_status(self, response: UpstreamResponse, fallback: str) -> None:
        if response.ok:
            return
        data = error_details(response.data)
        logger.error(f"KIE.AI error {response.status_code}: {data}")
        raise UpstreamError(
            error_message(data, fallback),
            status_code=response.status_code,
            details=data,
            kieStatus=response.status_code,
        )

    async def create_task(self, body: Dict[str, Any]) -> Any:
        """Start a Nano-Banana image generation task"""
        prompt = ((body.get("input") or {}).get("prompt") or "")[:50]
        logger.info(f"Creating KIE.AI task for model {body.get('model')}: {prompt}...")
        response = await self.request("POST", f"{self.base_url}/api/v1/jobs/createTask", json=body)
        self._raise_for_status(response, "Generation failed")
        logger.info(f"KIE.AI task started: {(response.data.get('data') or {}).get('taskId')}")
        return response.data

    async def generate_video(self, body: Dict[str, Any]) -> Any:
        """Start a VEO video generation task"""
        logger.info(
            f"Creating KIE.AI VEO task: model={body.get('model')} aspectRatio={body.get('aspectRatio')} "
            f"imageUrls={bool(body.get('imageUrls'))}"
        )
        response = await self.request("POST", f"{self.base_url}/api/v1/veo/generate", json=body)
        self._raise_for_status(response, "VEO generation failed")
        logger.info(f"KIE.AI VEO task started: {(response.data.get('data') or {}).get('taskId')}")
        return response.data

    async def task_status(self, task_id: str, task_type: Optional[str] = None) -> Dict[str, Any]:
        """Fetch and normalize the status of an image or video task"""
        if is_video_task(task_id, task_type):
            url = f"{self.base_url}/api/v1/veo/record-info"
        else:
            url = f"{self.base_url}/api/v1/jobs/recordInfo"
        response = await self.request("GET", url, params={"taskId": task_id})
        self._raise_for_status(response, "Status check failed")
        normalized = normalize_task_status(task_id, response.data, task_type)
        logger.info(f"Task {task_id} state={normalized['state']} hasResults={bool(normalized['resultUrls'])}")
        return normalized

    async def upload_base64(self, base64_data: str, file_name: Optional[str] = None, upload_path: str = "documents/upload") -> Dict[str, Any]:
        """Upload a base64 file to KIE.AI storage"""
        file_name = file_name or f"{int(time.time() * 1000)}.jpg"
        logger.info(f"Uploading {file_name} to KIE.AI ({len(base64_data)} chars) under {upload_path}")
        response = await self.request(
            "POST",
            f"{self.settings.KIE_AI_UPLOAD_URL.rstrip('/')}/api/file-base64-upload",
            json={"base64Data": base64_data, "uploadPath": upload_path, "fileName": file_name},
        )
        self._raise_for_status(response, "Upload failed")
        return {
            "success": True,
            "data": response.data,
            "downloadUrl": (response.data.get("data") or {}).get("downloadUrl"),
        }
