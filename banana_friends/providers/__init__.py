from .upstream import UpstreamClient, UpstreamResponse
from .kie_ai import KieAIClient, normalize_task_status, is_video_task
from .seedream import SeedreamClient
from .kling import KlingClient, create_kling_jwt
from .gemini import GeminiClient, GeminiResult
__all__ = [
    "UpstreamClient",
    "UpstreamResponse",
    "KieAIClient",
    "normalize_task_status",
    "is_video_task",
    "SeedreamClient",
    "KlingClient",
    "create_kling_jwt",
    "GeminiClient",
    "GeminiResult"
]
