"""
Shared plumbing for the upstream generation APIs
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
import httpx
from banana_friends.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class UpstreamResponse:
    """Status code and decoded JSON body of one upstream call"""
    status_code: int
    data: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class UpstreamClient:
    """
    Base class for one third-party API.
    A new instance, and a new httpx client, is built for every request.
    """
    service_name = "upstream"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self.timeout = httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS, connect=10.0)

    def _auth_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    async def request(self, method: str, url: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> UpstreamResponse:
        """
        Issue one call and decode its JSON body
        Args:
            method: HTTP method
            url: Absolute upstream URL
            json: Body to send verbatim
            params: Query parameters
        Returns:
            UpstreamResponse with the upstream status and body
        Raises:
            httpx.HTTPError on network failures, ValueError when the body is not JSON
        """
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        logger.info(f"{self.service_name}: {method} {url}")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.request(method, url, json=json, params=params, headers=headers)
        logger.info(f"{self.service_name}: response {response.status_code}")
        return UpstreamResponse(status_code=response.status_code, data=response.json())


def error_message(data: Any, fallback: str) -> str:
    """Pull a readable message out of an upstream error body"""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        error = error.get("message") or error.get("code")
    return str(error) if error else fallback


def error_details(data: Any) -> Dict[str, Any]:
    return data if isinstance(data, dict) else {"body": data}
