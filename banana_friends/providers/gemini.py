"""
Gemini image generation client used by the async generation queue
"""
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import httpx
from banana_friends.config.settings import Settings
from banana_friends.providers.upstream import UpstreamClient

logger = logging.getLogger(__name__)

SAFETY_BLOCK = "IMAGE_SAFETY"
EMPTY_USAGE = {"promptTokenCount": 0, "candidatesTokenCount": 0, "totalTokenCount": 0}


@dataclass
class GeminiResult:
    """Outcome of one generateContent call"""
    success: bool
    text: Optional[str] = None
    image: Optional[str] = None
    error: Optional[str] = None
    blocked: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    usage: Dict[str, Any] = field(default_factory=dict)


def _inline_part(mime_type: str, data: str) -> Dict[str, Any]:
    return {"inline_data": {"mime_type": mime_type, "data": data}}


def _strip_data_url(data: str) -> str:
    return data.split(",", 1)[1] if "," in data else data


def parse_response(data: Dict[str, Any], model: str) -> GeminiResult:
    """
    Pull the generated image and text out of a generateContent body
    The image comes back as a data URL; a safety block is a failed, non-retryable result.
    """
    candidates = data.get("candidates") or []
    if not candidates:
        return GeminiResult(success=False, error="No valid content received from Gemini API")
    candidate = candidates[0]
    if candidate.get("finishReason") == SAFETY_BLOCK:
        return GeminiResult(
            success=False,
            error=candidate.get("finishMessage") or "Image blocked by safety filter",
            blocked=True,
        )
    texts = []
    image = None
    for part in (candidate.get("content") or {}).get("parts") or []:
        if part.get("text"):
            texts.append(part["text"])
            continue
        # The API answers in either casing
        inline = part.get("inline_data") or part.get("inlineData") or {}
        mime_type = inline.get("mime_type") or inline.get("mimeType") or ""
        if mime_type.startswith("image/"):
            image = f"data:{mime_type};base64,{inline.get('data')}"
    text = " ".join(texts).strip()
    if not image and not text:
        return GeminiResult(success=False, error="No valid content received from Gemini API")
    return GeminiResult(
        success=True,
        text=text or "Image generated successfully!",
        image=image,
        metadata={"model": model, "finishReason": candidate.get("finishReason")},
        usage=data.get("usageMetadata") or dict(EMPTY_USAGE),
    )


class GeminiClient(UpstreamClient):
    """Calls Gemini with the API key of the user who owns the generation"""
    service_name = "Gemini"

    def __init__(self, settings: Settings, api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings, transport)
        self.api_key = api_key

    def _auth_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    @property
    def model(self) -> str:
        return self.settings.GEMINI_MODEL

    async def fetch_image_part(self, url: str) -> Dict[str, Any]:
        """Download a reference image and inline it as base64"""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(url)
        response.raise_for_status()
        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        return _inline_part(mime_type, base64.b64encode(response.content).decode("ascii"))

    async def build_parts(self, prompt: str, face_image_url: Optional[str] = None,
                          additional_images: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        if face_image_url:
            try:
                parts.append(await self.fetch_image_part(face_image_url))
            except httpx.HTTPError as e:
                logger.warning(f"Failed to load main face image, generating without it: {e}")
        for image in additional_images or []:
            if image.get("base64"):
                parts.append(_inline_part(image.get("mime_type") or "image/jpeg", _strip_data_url(image["base64"])))
        return parts

    async def generate(self, prompt: str, resolution: str, aspect_ratio: str,
                       face_image_url: Optional[str] = None,
                       additional_images: Optional[List[Dict[str, Any]]] = None) -> GeminiResult:
        """
        One generateContent call, no retries
        Returns:
            GeminiResult; upstream errors are a failed result, not an exception
        Raises:
            httpx.HTTPError on network failures, ValueError when the body is not JSON
        """
        parts = await self.build_parts(prompt, face_image_url, additional_images)
        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "response_modalities": ["TEXT", "IMAGE"],
                "image_config": {"aspect_ratio": aspect_ratio, "image_size": resolution},
            },
        }
        logger.info(f"Gemini generation: model={self.model} parts={len(parts)} resolution={resolution}")
        url = f"{self.settings.GEMINI_API_URL.rstrip('/')}/models/{self.model}:generateContent"
        response = await self.request("POST", url, json=body)
        if not response.ok:
            logger.error(f"Gemini API error {response.status_code}: {response.data}")
            return GeminiResult(success=False, error=f"Gemini API Error {response.status_code}: {response.data}")
        return parse_response(response.data, self.model)
