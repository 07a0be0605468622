"""
Shared fakes for the storybook test suite.
"""

import base64
import io
from typing import Dict, List, Optional, Set

import pytest
from PIL import Image

from storybook.models import StoryPage
from storybook.settings import Settings
from storybook.strategies import Narration, StoryStrategy


def make_png_bytes(color=(200, 120, 40, 255), size=(8, 6)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_data_url(color=(200, 120, 40, 255)) -> str:
    return "data:image/png;base64," + base64.b64encode(make_png_bytes(color)).decode("ascii")


def pcm_b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class FakeStrategy(StoryStrategy):
    """In-memory strategy: no network, configurable per-page failures, records call order."""

    name = "fake"
    retains_pcm = True

    def __init__(self, fail_image_on: Optional[Set[int]] = None, fail_narration_on: Optional[Set[int]] = None,
                 story_error: Optional[Exception] = None, retains_pcm: bool = True):
        self.fail_image_on = set(fail_image_on or ())
        self.fail_narration_on = set(fail_narration_on or ())
        self.story_error = story_error
        self.retains_pcm = retains_pcm
        self.events: List[str] = []
        self.image_url = make_data_url()

    def _index(self, text: str) -> int:
        return int(text.rsplit(" ", 1)[-1])

    async def suggest_idea(self) -> str:
        return "Un conejo astronauta."

    async def title(self, idea: str) -> str:
        self.events.append("title")
        return "El Dragón Miedoso"

    async def character_description(self, idea: str) -> str:
        self.events.append("character")
        return "A small green dragon with a red scarf"

    async def story(self, idea, age_range, num_pages, character_description) -> List[Dict[str, str]]:
        self.events.append("story")
        if self.story_error:
            raise self.story_error
        return [
            {"text": f"Texto de la página {i}", "imagePrompt": f"{character_description} scene {i}"}
            for i in range(num_pages)
        ]

    async def image(self, prompt: str, high_quality: bool) -> str:
        index = self._index(prompt)
        self.events.append(f"image:{index}")
        if index in self.fail_image_on:
            raise RuntimeError(f"image failed for {index}")
        return self.image_url

    async def narration(self, text: str) -> Narration:
        index = self._index(text)
        self.events.append(f"narration:{index}")
        if index in self.fail_narration_on:
            raise RuntimeError(f"narration failed for {index}")
        pcm = pcm_b64(bytes([index]) * 4)
        return Narration(audio_url="data:audio/wav;base64,AAAA", pcm_data=pcm if self.retains_pcm else None)


@pytest.fixture
def settings() -> Settings:
    return Settings(google_api_key="test-google-key", stability_api_key="test-stability-key",
                    http_max_retries=2)


@pytest.fixture
def ready_pages() -> List[StoryPage]:
    return [
        StoryPage(
            id=i,
            text=f"Página número {i} <con> & símbolos",
            image_prompt=f"scene {i}",
            image_url=make_data_url((40 * i % 255, 100, 200, 255)),
            audio_url="data:audio/wav;base64,AAAA",
            pcm_data=pcm_b64(bytes(range(i, i + 10))),
        )
        for i in range(4)
    ]
