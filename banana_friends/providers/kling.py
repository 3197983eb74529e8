"""
Kling AI client
Kling authenticates with a short-lived HS256 JWT signed by the account's secret key.
"""
import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional
from banana_friends.api.errors import ConfigurationError, PassthroughUpstreamError
from banana_friends.providers.upstream import UpstreamClient

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 30 * 60


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _encode_segment(obj: Dict[str, Any]) -> str:
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def create_kling_jwt(access_key: str, secret_key: str, now: Optional[int] = None, ttl: int = TOKEN_TTL_SECONDS) -> str:
    """
    Build the bearer token Kling expects
    Args:
        access_key: Kling access key, used as issuer
        secret_key: Kling secret key, used as HMAC key
        now: Unix time to sign with (defaults to the current time)
        ttl: Lifetime in seconds
    Returns:
        header.payload.signature, each segment base64url without padding
    """
    if not access_key or not secret_key:
        raise ConfigurationError("Kling AI keys not configured")
    if now is None:
        now = int(time.time())
    header = _encode_segment({"alg": "HS256", "typ": "JWT"})
    payload = _encode_segment({"iss": access_key, "exp": now + ttl, "nbf": now})
    signing_input = f"{header}.{payload}"
    signature = hmac.new(secret_key.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return f"{signing_input}.{base64url_encode(signature)}"


class KlingClient(UpstreamClient):
    """Kling AI image-to-video and account client"""
    service_name = "Kling"

    def _auth_headers(self) -> Dict[str, str]:
        token = create_kling_jwt(
            self.settings.KLING_ACCESS_KEY,
            self.settings.KLING_SECRET_KEY,
            ttl=self.settings.KLING_TOKEN_TTL_SECONDS,
        )
        return {"Authorization": f"Bearer {token}"}

    @property
    def base_url(self) -> str:
        return self.settings.KLING_API_BASE_URL.rstrip("/")

    async def _call(self, method: str, path: str, json: Any = None) -> Any:
        response = await self.request(method, f"{self.base_url}{path}", json=json)
        if not response.ok:
            logger.error(f"Kling API error {response.status_code}: {response.data}")
            raise PassthroughUpstreamError(response.status_code, response.data)
        return response.data

    async def generate(self, body: Dict[str, Any]) -> Any:
        """Start an image-to-video task"""
        return await self._call("POST", "/v1/videos/image2video", json=body)

    async def task_status(self, task_id: str) -> Any:
        return await self._call("GET", f"/v1/videos/image2video/{task_id}")

    async def credits(self) -> Any:
        """Account profile, including the remaining credits"""
        return await self._call("GET", "/v1/user/profile")
