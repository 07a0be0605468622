"""
Tests for the narration client.
"""

import asyncio
import json

import httpx
import pytest

from storybook.errors import (
    GENERIC_FAILURE_MESSAGE,
    ConfigurationError,
    MalformedResponseError,
    UpstreamServiceError,
    user_message_for,
)
from storybook.settings import Settings
from storybook.tts_client import NarrationClient


def audio_response(data: str = "UENNREFUQQ==") -> dict:
    return {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "audio/L16;rate=24000", "data": data}}]}}]}


class TestNarrationClient:
    """Tests for NarrationClient.generate."""

    def test_request_shape_and_payload(self, settings) -> None:
        """Test the request names the voice, asks for audio only and returns the nested payload."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=audio_response())

        client = NarrationClient(settings, transport=httpx.MockTransport(handler))

        pcm = asyncio.run(client.generate("Había una vez"))

        assert pcm == "UENNREFUQQ=="
        assert seen["url"].endswith(":generateContent")
        config = seen["body"]["generationConfig"]
        assert config["responseModalities"] == ["AUDIO"]
        assert config["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Kore"
        assert "Había una vez" in seen["body"]["contents"][0]["parts"][0]["text"]

    def test_json_error_message(self, settings) -> None:
        """Test the structured error message is extracted."""
        transport = httpx.MockTransport(
            lambda r: httpx.Response(400, json={"error": {"code": 400, "message": "Voice not found"}})
        )
        client = NarrationClient(settings, transport=transport)

        with pytest.raises(UpstreamServiceError) as exc_info:
            asyncio.run(client.generate("hola"))
        assert exc_info.value.detail == "Voice not found"
        assert exc_info.value.status_code == 400

    def test_plain_text_error_body(self, settings) -> None:
        """Test a non-JSON error body is used as-is."""
        transport = httpx.MockTransport(lambda r: httpx.Response(503, text="upstream overloaded"))
        client = NarrationClient(settings, transport=transport)

        with pytest.raises(UpstreamServiceError) as exc_info:
            asyncio.run(client.generate("hola"))
        assert exc_info.value.detail == "upstream overloaded"

    def test_empty_error_body(self, settings) -> None:
        """Test an empty error body falls back to the status line."""
        transport = httpx.MockTransport(lambda r: httpx.Response(502))
        client = NarrationClient(settings, transport=transport)

        with pytest.raises(UpstreamServiceError) as exc_info:
            asyncio.run(client.generate("hola"))
        assert "502" in exc_info.value.detail

    @pytest.mark.parametrize("body", [
        {"candidates": []},
        {"candidates": [{"content": {"parts": [{"text": "no audio"}]}}]},
        audio_response(data=""),
    ])
    def test_missing_audio_is_malformed(self, settings, body) -> None:
        """Test a success without audio is a distinct malformed-response error."""
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=body))
        client = NarrationClient(settings, transport=transport)

        with pytest.raises(MalformedResponseError):
            asyncio.run(client.generate("hola"))

    def test_requires_credential(self) -> None:
        """Test a missing key is a configuration error."""
        with pytest.raises(ConfigurationError):
            NarrationClient(Settings(google_api_key=""))

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
    ])
    def test_transport_failure_is_upstream(self, settings, error) -> None:
        """Test connect and timeout failures are attributed to the TTS provider."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise error

        client = NarrationClient(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamServiceError) as exc_info:
            asyncio.run(client.generate("hola"))
        assert exc_info.value.provider == "Google AI TTS"
        assert user_message_for(exc_info.value) != GENERIC_FAILURE_MESSAGE
        assert "Google AI TTS" in user_message_for(exc_info.value)
