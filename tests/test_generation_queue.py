import json
from datetime import datetime, timedelta

import httpx
import pytest

from banana_friends.api.dependencies import get_gemini_client_factory
from banana_friends.database import Generation, User
from banana_friends.main import app
from banana_friends.providers.gemini import GeminiClient, parse_response

REFUSE = "refuse"

IMAGE_BODY = {
    "candidates": [{
        "finishReason": "STOP",
        "content": {"parts": [{"text": "Here you go"}, {"inlineData": {"mimeType": "image/png", "data": "aW1n"}}]},
    }],
    "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 32, "totalTokenCount": 42},
}
BLOCKED_BODY = {"candidates": [{"finishReason": "IMAGE_SAFETY", "finishMessage": "Blocked for safety"}]}


class GeminiStub:
    """MockTransport handler: POSTs get the queued answers in turn, GETs are served from images"""

    def __init__(self, *answers, images=None):
        self.answers = list(answers)
        self.images = images or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            content = self.images.get(str(request.url))
            if content is None:
                return httpx.Response(404)
            return httpx.Response(200, content=content, headers={"content-type": "image/png"})
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if answer == REFUSE:
            raise httpx.ConnectError("connection refused", request=request)
        status_code, body = answer
        return httpx.Response(status_code, json=body)

    @property
    def posted(self):
        return [json.loads(request.content) for request in self.requests if request.method == "POST"]


@pytest.fixture
def use_gemini(settings):
    def _use(stub):
        app.dependency_overrides[get_gemini_client_factory] = lambda: (
            lambda api_key: GeminiClient(settings, api_key, transport=httpx.MockTransport(stub))
        )
        return stub
    return _use


@pytest.fixture
def make_user(db_session):
    def _make(**fields):
        values = {"username": f"user{db_session.query(User).count()}", "password_hash": "hash", "gemini_api_key": "user-gemini-key"}
        values.update(fields)
        user = User(**values)
        db_session.add(user)
        db_session.commit()
        return user.id
    return _make


def _generation(db_session, generation_id):
    db_session.expire_all()
    return db_session.get(Generation, generation_id)


def test_start_answers_202_and_completes_in_background(client, db_session, use_gemini, make_user):
    stub = use_gemini(GeminiStub((200, IMAGE_BODY)))
    user_id = make_user()
    response = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "A cat astronaut"})
    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "processing"
    assert data["message"] == "Generation started successfully"

    request = stub.requests[-1]
    assert request.headers["x-goog-api-key"] == "user-gemini-key"
    assert str(request.url).endswith("/models/gemini-2.5-flash-image:generateContent")
    body = stub.posted[-1]
    assert body["contents"][0]["parts"] == [{"text": "A cat astronaut"}]
    assert body["generationConfig"]["image_config"] == {"aspect_ratio": "9:16", "image_size": "2K"}

    generation = _generation(db_session, data["generation_id"])
    assert generation.status == "completed"
    assert generation.result_base64 == "data:image/png;base64,aW1n"
    assert generation.result_image_url == "base64_stored"
    assert generation.gemini_metadata["usageMetadata"]["totalTokenCount"] == 42
    assert generation.completed_at is not None


def test_status_of_completed_generation(client, use_gemini, make_user):
    use_gemini(GeminiStub((200, IMAGE_BODY)))
    user_id = make_user()
    generation_id = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "x"}).json()["generation_id"]
    data = client.get(f"/api/generations/{generation_id}/status", params={"user_id": user_id}).json()
    assert data["status"] == "completed"
    assert data["result"]["image"] == "data:image/png;base64,aW1n"
    assert data["result"]["text"] == "Image generated successfully!"
    assert data["metadata"]["model"] == "gemini-2.5-flash-image"
    assert "error" not in data


def test_missing_fields(client):
    response = client.post("/api/generations/start", json={"prompt": "x"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: user_id and prompt"


def test_unknown_user_is_rejected(client, db_session, use_gemini):
    stub = use_gemini(GeminiStub((200, IMAGE_BODY)))
    response = client.post("/api/generations/start", json={"user_id": "nobody", "prompt": "x"})
    assert response.status_code == 401
    assert response.json()["error"] == "Authentication failed: User not found or invalid"
    assert db_session.query(Generation).count() == 0
    assert stub.requests == []


def test_user_without_gemini_key_is_rejected(client, make_user):
    user_id = make_user(gemini_api_key=None)
    response = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "x"})
    assert response.status_code == 401
    assert "no Gemini API key" in response.json()["error"]


def test_safety_block_fails_generation(client, db_session, use_gemini, make_user):
    use_gemini(GeminiStub((200, BLOCKED_BODY)))
    user_id = make_user()
    generation_id = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "x"}).json()["generation_id"]
    generation = _generation(db_session, generation_id)
    assert generation.status == "failed"
    assert generation.error_message == "Blocked for safety"
    data = client.get(f"/api/generations/{generation_id}/status", params={"user_id": user_id}).json()
    assert data["error"] == "Blocked for safety"
    assert "result" not in data


def test_unreachable_gemini_fails_generation(client, db_session, use_gemini, make_user):
    use_gemini(GeminiStub(REFUSE))
    user_id = make_user()
    generation_id = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "x"}).json()["generation_id"]
    generation = _generation(db_session, generation_id)
    assert generation.status == "failed"
    assert generation.error_message.startswith("Unexpected error: connection refused")


def test_failed_generation_can_be_retried(client, db_session, use_gemini, make_user):
    stub = use_gemini(GeminiStub((429, {"error": {"message": "quota"}}), (200, IMAGE_BODY)))
    user_id = make_user()
    generation_id = client.post("/api/generations/start", json={"user_id": user_id, "prompt": "x"}).json()["generation_id"]
    generation = _generation(db_session, generation_id)
    assert generation.status == "failed"
    assert generation.error_message.startswith("Gemini API Error 429")

    response = client.post(f"/api/generations/{generation_id}/retry", json={"user_id": user_id})
    assert response.json() == {"message": "Generation retry started", "status": "processing"}
    generation = _generation(db_session, generation_id)
    assert generation.status == "completed"
    assert generation.retry_count == 1
    assert generation.error_message is None
    assert len(stub.posted) == 2


def test_retry_rejects_processing_generation(client, db_session, make_user):
    user_id = make_user()
    generation = Generation(user_id=user_id, prompt="x", status="processing")
    db_session.add(generation)
    db_session.commit()
    response = client.post(f"/api/generations/{generation.id}/retry", json={"user_id": user_id})
    assert response.status_code == 400
    assert response.json()["error"] == "Generation is still processing"


def test_retry_requires_user_id(client):
    response = client.post("/api/generations/abc/retry", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing user_id"


def test_status_requires_user_id_and_ownership(client, db_session, make_user):
    owner = make_user()
    other = make_user()
    generation = Generation(user_id=owner, prompt="x", status="processing")
    db_session.add(generation)
    db_session.commit()
    generation_id = generation.id
    response = client.get(f"/api/generations/{generation_id}/status")
    assert response.status_code == 400
    assert response.json()["error"] == "Missing user_id parameter"
    response = client.get(f"/api/generations/{generation_id}/status", params={"user_id": other})
    assert response.status_code == 404
    assert response.json()["error"] == "Generation not found"


def test_user_generations_newest_first_with_status_filter(client, db_session, make_user):
    user_id = make_user()
    now = datetime.utcnow()
    db_session.add_all([
        Generation(user_id=user_id, prompt="old", status="completed", result_base64="data:image/png;base64,b2xk",
                   generation_time_seconds=3.5, created_at=now - timedelta(hours=2)),
        Generation(user_id=user_id, prompt="broken", status="failed", error_message="quota",
                   created_at=now - timedelta(hours=1)),
        Generation(user_id=user_id, prompt="new", status="processing", created_at=now),
        Generation(user_id=make_user(), prompt="someone else", status="completed", created_at=now),
    ])
    db_session.commit()

    data = client.get(f"/api/generations/user/{user_id}").json()
    assert data["total"] == 3
    assert [g["prompt"] for g in data["generations"]] == ["new", "broken", "old"]
    assert data["generations"][1]["error"] == "quota"
    assert data["generations"][2]["result"] == {
        "text": None, "image": "data:image/png;base64,b2xk", "generation_time_seconds": 3.5
    }

    data = client.get(f"/api/generations/user/{user_id}", params={"status": "failed", "limit": 5}).json()
    assert [g["prompt"] for g in data["generations"]] == ["broken"]


def test_reference_images_are_inlined(client, use_gemini, make_user):
    stub = use_gemini(GeminiStub((200, IMAGE_BODY), images={"https://cdn.example.com/face.png": b"face"}))
    user_id = make_user()
    client.post("/api/generations/start", json={
        "user_id": user_id,
        "prompt": "Me on the moon",
        "resolution": "4K",
        "aspect_ratio": "1:1",
        "main_face_image_url": "https://cdn.example.com/face.png",
        "additional_images": [{"base64": "data:image/jpeg;base64,ZXh0cmE=", "mime_type": "image/jpeg"}, {}],
    })
    body = stub.posted[-1]
    assert body["contents"][0]["parts"] == [
        {"text": "Me on the moon"},
        {"inline_data": {"mime_type": "image/png", "data": "ZmFjZQ=="}},
        {"inline_data": {"mime_type": "image/jpeg", "data": "ZXh0cmE="}},
    ]
    assert body["generationConfig"]["image_config"] == {"aspect_ratio": "1:1", "image_size": "4K"}


def test_unreachable_face_image_is_skipped(client, db_session, use_gemini, make_user):
    stub = use_gemini(GeminiStub((200, IMAGE_BODY)))
    user_id = make_user()
    generation_id = client.post("/api/generations/start", json={
        "user_id": user_id, "prompt": "x", "main_face_image_url": "https://cdn.example.com/missing.png",
    }).json()["generation_id"]
    assert stub.posted[-1]["contents"][0]["parts"] == [{"text": "x"}]
    assert _generation(db_session, generation_id).status == "completed"


class TestParseResponse:
    def test_snake_case_parts(self):
        result = parse_response(
            {"candidates": [{"content": {"parts": [{"inline_data": {"mime_type": "image/webp", "data": "d2Vi"}}]}}]},
            "model-x",
        )
        assert result.success
        assert result.image == "data:image/webp;base64,d2Vi"
        assert result.text == "Image generated successfully!"
        assert result.usage["totalTokenCount"] == 0

    def test_no_candidates(self):
        result = parse_response({}, "model-x")
        assert not result.success
        assert result.error == "No valid content received from Gemini API"

    def test_safety_block(self):
        result = parse_response(BLOCKED_BODY, "model-x")
        assert result.blocked
        assert not result.success
