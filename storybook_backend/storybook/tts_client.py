import logging
from typing import Optional

import httpx

from .errors import ConfigurationError, MalformedResponseError, upstream_error
from .http_utils import error_message_from, post_with_retry
from .prompts import NARRATION_PROMPT_TEMPLATE
from .settings import Settings

logger = logging.getLogger(__name__)

PROVIDER = "Google AI TTS"


class NarrationClient:
    """Speech synthesis: page text in, base64 PCM (16-bit LE, mono, 24 kHz) out."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not settings.google_api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set; please configure your .env")
        self.settings = settings
        self.transport = transport

    def _url(self) -> str:
        return f"{self.settings.gemini_api_root}/models/{self.settings.tts_model}:generateContent"

    def _payload(self, text: str) -> dict:
        return {
            "contents": [{"parts": [{"text": NARRATION_PROMPT_TEMPLATE.format(text=text)}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.settings.tts_voice}}
                },
            },
        }

    async def generate(self, text: str) -> str:
        logger.info(f"Requesting narration for text: {text[:60]}...")
        r = await post_with_retry(
            self._url(),
            timeout=self.settings.http_timeout_s,
            max_retries=self.settings.http_max_retries,
            transport=self.transport,
            label=PROVIDER,
            headers={"x-goog-api-key": self.settings.google_api_key, "Content-Type": "application/json"},
            json=self._payload(text),
        )
        if r.status_code >= 400:
            message = error_message_from(r)
            logger.error(f"TTS failed {r.status_code}: {message}")
            raise upstream_error(PROVIDER, message, r.status_code)

        try:
            data = r.json()
            audio = data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Invalid TTS response structure: {r.text[:300]}")
            raise MalformedResponseError(PROVIDER) from e
        if not audio:
            raise MalformedResponseError(PROVIDER, "empty audio payload")
        return audio
