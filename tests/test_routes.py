"""FastAPI route tests — TestClient against create_app() with a fake port."""

import io
import json

import pytest
from unittest.mock import MagicMock, patch
from PIL import Image

from fastapi.testclient import TestClient

from homefix_ai.app import create_app
from homefix_ai.config import settings
from homefix_ai.errors import GenerationUnavailable
from homefix_ai.generation import GenerationPort, ImagePart
from homefix_ai.ratelimit import limiter

HIGH_CONFIDENCE_REPLY = json.dumps({
    "needsMoreInfo": False,
    "confidence": 0.9,
    "problemShort": "Clogged drain",
    "tools": ["Plunger"],
    "steps": ["Plunge", "Run hot water", "Check flow"],
})

LOW_CONFIDENCE_REPLY = json.dumps({
    "confidence": 0.45,
    "summary": "Could be several things",
    "questions": [{"question": "Which drain?", "suggestions": ["Kitchen", "Bath", "Shower"]}],
})


def _jpeg(width=50, height=40):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (10, 20, 30)).save(buf, format="JPEG")
    return buf.getvalue()


def _metadata(**overrides):
    payload = {"description": "Kitchen sink drains slowly"}
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture(autouse=True)
def isolate(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path))
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def generator():
    gen = MagicMock(spec=GenerationPort)
    gen.generate.return_value = HIGH_CONFIDENCE_REPLY
    return gen


@pytest.fixture
def client(generator):
    with TestClient(create_app(generator=generator)) as tc:
        yield tc


class TestHealthEndpoint:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["llmModel"] == settings.OPENAI_MODEL

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_unknown_endpoint_envelope(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "Endpoint not found"

    def test_correlation_id_header(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "my-trace-id"})
        assert response.headers["X-Correlation-ID"] == "my-trace-id"


class TestAnalyzeEndpoint:
    def test_analyze_without_images(self, client, generator):
        response = client.post("/analyze", data={"metadata": _metadata()})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["timestamp"]
        data = body["data"]
        assert data["needsMoreInfo"] is False
        assert data["confidenceLevel"] == "high"
        assert data["tools"] == [{"name": "Plunger", "description": ""}]
        assert data["materials"] == []
        assert generator.generate.call_count == 1

    def test_analyze_with_image(self, client, generator):
        response = client.post(
            "/analyze",
            data={"metadata": _metadata()},
            files=[("images", ("sink.jpg", _jpeg(), "image/jpeg"))],
        )
        assert response.status_code == 200
        parts = generator.generate.call_args[0][0]
        images = [p for p in parts if isinstance(p, ImagePart)]
        assert len(images) == 1
        assert images[0].mime_type == "image/jpeg"

    def test_clarifying_questions(self, client, generator):
        generator.generate.return_value = LOW_CONFIDENCE_REPLY
        history = [{"question": "Which room?", "answer": ""}]
        response = client.post("/analyze", data={"metadata": _metadata(conversationHistory=history)})
        data = response.json()["data"]
        assert data["needsMoreInfo"] is True
        assert data["questions"][0]["suggestions"] == ["Kitchen", "Bath", "Shower"]
        assert data["steps"] == []

    def test_missing_metadata(self, client):
        response = client.post("/analyze", data={})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Invalid metadata format",
            "timestamp": response.json()["timestamp"],
        }

    def test_bad_json_metadata(self, client):
        response = client.post("/analyze", data={"metadata": "{not json"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid metadata format"

    def test_blank_description(self, client, generator):
        response = client.post("/analyze", data={"metadata": _metadata(description="   ")})
        assert response.status_code == 400
        assert response.json()["error"] == "Description is required"
        generator.generate.assert_not_called()

    def test_bad_enum(self, client):
        response = client.post("/analyze", data={"metadata": _metadata(location="attic")})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid metadata")

    def test_too_many_images(self, client, generator):
        files = [("images", (f"{i}.jpg", _jpeg(), "image/jpeg")) for i in range(5)]
        response = client.post("/analyze", data={"metadata": _metadata()}, files=files)
        assert response.status_code == 400
        assert response.json()["error"] == "Maximum 4 images allowed"
        generator.generate.assert_not_called()

    def test_unsupported_media_type(self, client):
        response = client.post(
            "/analyze",
            data={"metadata": _metadata()},
            files=[("images", ("doc.pdf", b"%PDF-1.4", "application/pdf"))],
        )
        assert response.status_code == 415
        assert "application/pdf" in response.json()["error"]

    def test_generation_unavailable(self, client, generator):
        generator.generate.side_effect = GenerationUnavailable("upstream 503")
        response = client.post("/analyze", data={"metadata": _metadata()})
        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Analysis failed. Please try again."
        assert "data" not in body

    def test_malformed_model_output(self, client, generator):
        generator.generate.return_value = "Sorry, I can't help with that."
        response = client.post("/analyze", data={"metadata": _metadata()})
        assert response.status_code == 502
        assert response.json()["success"] is False

    def test_rate_limited(self, client):
        limit = int(settings.ANALYZE_RATE_LIMIT.split("/")[0])
        for _ in range(limit):
            assert client.post("/analyze", data={"metadata": _metadata()}).status_code == 200
        response = client.post("/analyze", data={"metadata": _metadata()})
        assert response.status_code == 429
        assert response.json()["success"] is False
        assert "Retry-After" in response.headers


class TestChatEndpoint:
    def test_chat(self, client, generator):
        generator.generate.return_value = " Yes, use PVC cement. "
        response = client.post("/chat", json={
            "originalDescription": "Cracked PVC drain pipe",
            "analysisContext": {"problemShort": "Cracked drain pipe", "materials": ["PVC coupling"]},
            "conversationHistory": [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hey"}],
            "newMessage": "Can I glue it?",
        })
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["response"] == "Yes, use PVC cement."

    def test_chat_missing_message(self, client, generator):
        response = client.post("/chat", json={"originalDescription": "Cracked pipe"})
        assert response.status_code == 400
        assert response.json()["error"] == "Message is required"
        generator.generate.assert_not_called()

    def test_chat_missing_description(self, client):
        response = client.post("/chat", json={"newMessage": "Can I glue it?"})
        assert response.status_code == 400
        assert response.json()["error"] == "Original description is required"

    def test_chat_bad_role(self, client):
        response = client.post("/chat", json={
            "originalDescription": "Cracked pipe",
            "newMessage": "Hi",
            "conversationHistory": [{"role": "system", "content": "x"}],
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_chat_generation_failure(self, client, generator):
        generator.generate.side_effect = GenerationUnavailable("timeout")
        response = client.post("/chat", json={"originalDescription": "Cracked pipe", "newMessage": "Hi"})
        assert response.status_code == 503
        assert response.json()["error"] == "Failed to process chat message"


class TestLegacyHistoryKey:
    def test_previous_answers_sets_round(self, client, generator):
        generator.generate.return_value = LOW_CONFIDENCE_REPLY
        legacy = [{"question": f"Q{i}?", "answer": "Kitchen"} for i in range(3)]
        response = client.post("/analyze", data={"metadata": _metadata(previousAnswers=legacy)})
        assert response.status_code == 200
        text = generator.generate.call_args[0][0][-1].text
        assert "Round 2/3." in text
        assert "Q: Q2?\nA: Kitchen" in text

    def test_conversation_history_preferred(self, client, generator):
        generator.generate.return_value = LOW_CONFIDENCE_REPLY
        response = client.post("/analyze", data={"metadata": _metadata(
            conversationHistory=[{"question": "Which room?", "answer": "Bath"}],
            previousAnswers=[{"question": f"Q{i}?", "answer": "x"} for i in range(6)],
        )})
        assert response.status_code == 200
        text = generator.generate.call_args[0][0][-1].text
        assert "Q: Which room?\nA: Bath" in text
        assert "Q0?" not in text
        assert "(final)" not in text


class TestUnexpectedErrors:
    def test_oversized_pixel_count_returns_envelope(self, client, generator):
        buf = io.BytesIO()
        Image.new("1", (20000, 20000), 0).save(buf, format="PNG")
        response = client.post(
            "/analyze",
            data={"metadata": _metadata()},
            files=[("images", ("huge.png", buf.getvalue(), "image/png"))],
        )
        assert response.status_code == 413
        assert response.json()["success"] is False
        assert response.json()["error"] == "Image dimensions too large."
        generator.generate.assert_not_called()

    def test_unhandled_exception_returns_envelope(self, generator):
        app = create_app(generator=generator)
        with TestClient(app, raise_server_exceptions=False) as tc:
            with patch("homefix_ai.engine.parse_analysis", side_effect=RuntimeError("normalizer bug")):
                response = tc.post("/analyze", data={"metadata": _metadata()})
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Internal server error"
        assert "normalizer bug" not in response.text
        assert body["timestamp"]
