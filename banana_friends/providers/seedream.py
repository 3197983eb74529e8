"""
Seedream 4.5 client (BytePlus ModelArk image generation)
"""
import logging
from typing import Any, Dict
from banana_friends.api.errors import ConfigurationError, UpstreamError
from banana_friends.providers.upstream import UpstreamClient, error_details, error_message

logger = logging.getLogger(__name__)


class SeedreamClient(UpstreamClient):
    service_name = "Seedream"

    def _auth_headers(self) -> Dict[str, str]:
        if not self.settings.SEEDREAM_API_KEY:
            raise ConfigurationError("Seedream API Key not configured")
        return {"Authorization": f"Bearer {self.settings.SEEDREAM_API_KEY}"}

    async def generate(self, body: Dict[str, Any]) -> Any:
        image = body.get("image")
        image_count = len(image) if isinstance(image, list) else (1 if image else 0)
        logger.info(
            f"Seedream generation: prompt={(body.get('prompt') or '')[:50]}... "
            f"images={image_count} size={body.get('size')}"
        )
        response = await self.request(
            "POST", f"{self.settings.SEEDREAM_API_URL.rstrip('/')}/images/generations", json=body
        )
        if not response.ok:
            data = error_details(response.data)
            logger.error(f"Seedream API error {response.status_code}: {data}")
            raise UpstreamError(
                error_message(data, "Seedream generation failed"),
                status_code=response.status_code,
                details=data,
                seedreamStatus=response.status_code,
            )
        logger.info("Seedream generation successful")
        return response.data
