import base64, logging
from typing import Optional
from urllib.parse import quote

import httpx

from .errors import ConfigurationError, MalformedResponseError, StoryError, upstream_error
from .http_utils import error_message_from, post_with_retry
from .settings import Settings

logger = logging.getLogger(__name__)

PLACEHOLDER_WIDTH = 800
PLACEHOLDER_HEIGHT = 600
PLACEHOLDER_BG = "F7F3E9"
PLACEHOLDER_TEXT = "Ilustración de ejemplo"
ERROR_PLACEHOLDER_TEXT = "Error al crear la ilustración"


def placeholder_url(is_error: bool = False) -> str:
    text = ERROR_PLACEHOLDER_TEXT if is_error else PLACEHOLDER_TEXT
    text_color = "DC2626" if is_error else "A0AEC0"
    return (
        f"https://placehold.co/{PLACEHOLDER_WIDTH}x{PLACEHOLDER_HEIGHT}/{PLACEHOLDER_BG}/{text_color}/png"
        f"?text={quote(text)}&font=chewy"
    )


def is_placeholder(url: Optional[str]) -> bool:
    return bool(url) and url.startswith("https://placehold.co/")


def to_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


class ImageClient:
    """
    Turns an image prompt into a displayable reference (data URL or placeholder URL).

    With ``degrade_on_error`` a failed generation returns the error placeholder;
    otherwise the failure propagates to the caller.
    """

    provider = "image"

    def __init__(self, settings: Settings, degrade_on_error: bool = True,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.degrade_on_error = degrade_on_error
        self.transport = transport

    def _credential(self) -> str:
        raise NotImplementedError

    async def _request(self, prompt: str, credential: str) -> str:
        raise NotImplementedError

    async def generate(self, prompt: str, high_quality: bool) -> str:
        if not high_quality:
            return placeholder_url(is_error=False)

        credential = self._credential()
        if not credential:
            raise ConfigurationError(f"{self.provider} credential is not set; please configure your .env")

        logger.info(f"Starting {self.provider} image generation for prompt: {prompt[:100]}...")
        try:
            return await self._request(prompt, credential)
        except StoryError as e:
            if not self.degrade_on_error:
                raise
            logger.warning(f"{self.provider} image generation failed, using error placeholder: {e}")
            return placeholder_url(is_error=True)

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        r = await post_with_retry(
            url,
            timeout=self.settings.http_timeout_s,
            max_retries=self.settings.http_max_retries,
            transport=self.transport,
            label=self.provider,
            **kwargs,
        )
        if r.status_code >= 400:
            message = error_message_from(r)
            logger.error(f"{self.provider} create failed {r.status_code}: {message}")
            raise upstream_error(self.provider, message, r.status_code)
        return r


class ImagenImageClient(ImageClient):
    """Prompt plus image count in, inline base64 bytes out."""

    provider = "Imagen"

    def _credential(self) -> str:
        return self.settings.google_api_key

    async def _request(self, prompt: str, credential: str) -> str:
        url = f"{self.settings.gemini_api_root}/models/{self.settings.image_model}:predict"
        r = await self._post(
            url,
            headers={"x-goog-api-key": credential, "Content-Type": "application/json"},
            json={
                "instances": [{"prompt": prompt}],
                "parameters": {"sampleCount": 1, "outputOptions": {"mimeType": "image/jpeg"}},
            },
        )
        try:
            prediction = r.json()["predictions"][0]
            image_b64 = prediction["bytesBase64Encoded"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(self.provider, "no image returned") from e
        if not image_b64:
            raise MalformedResponseError(self.provider, "no image returned")
        mime_type = prediction.get("mimeType") or "image/jpeg"
        return f"data:{mime_type};base64,{image_b64}"


class StabilityImageClient(ImageClient):
    """Multipart form POST, raw image bytes back."""

    provider = "Stability AI"

    def _credential(self) -> str:
        return self.settings.stability_api_key

    async def _request(self, prompt: str, credential: str) -> str:
        r = await self._post(
            self.settings.stability_endpoint,
            headers={"Authorization": f"Bearer {credential}", "accept": "image/*"},
            data={"prompt": prompt, "output_format": "jpeg", "aspect_ratio": "4:3"},
            files={"none": ""},
        )
        content_type = r.headers.get("content-type", "").split(";")[0].strip()
        if not r.content or not content_type.startswith("image/"):
            raise MalformedResponseError(self.provider, f"unexpected content-type {content_type!r}")
        return to_data_url(r.content, content_type)
