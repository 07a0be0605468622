"""
Pipeline strategies: one interface, two provider setups.

``gemini``    Imagen images (inline base64), raw PCM kept on every page so the
              audiobook export works.
``stability`` Stability AI images (multipart POST), narration kept only as a
              playable WAV data URL; the audiobook export is disabled.
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from .audio import wav_data_url
from .errors import ConfigurationError
from .image_client import ImageClient, ImagenImageClient, StabilityImageClient
from .llm import StoryWriter
from .models import AgeRange, MediaFailurePolicy
from .settings import Settings
from .tts_client import NarrationClient

logger = logging.getLogger(__name__)


class Narration(BaseModel):
    audio_url: str
    pcm_data: Optional[str] = None


class StoryStrategy:
    name = "base"
    retains_pcm = False

    def __init__(self, writer: StoryWriter, images: ImageClient, narrator: NarrationClient):
        self.writer = writer
        self.images = images
        self.narrator = narrator

    async def suggest_idea(self) -> str:
        return await self.writer.suggest_idea()

    async def title(self, idea: str) -> str:
        return await self.writer.short_title(idea)

    async def character_description(self, idea: str) -> str:
        return await self.writer.character_description(idea)

    async def story(self, idea: str, age_range: AgeRange, num_pages: int, character_description: str) -> List[Dict[str, str]]:
        return await self.writer.story_pages(idea, age_range, num_pages, character_description)

    async def image(self, prompt: str, high_quality: bool) -> str:
        return await self.images.generate(prompt, high_quality)

    async def narration(self, text: str) -> Narration:
        pcm = await self.narrator.generate(text)
        return Narration(audio_url=wav_data_url(pcm), pcm_data=pcm if self.retains_pcm else None)


class GeminiStrategy(StoryStrategy):
    name = "gemini"
    retains_pcm = True


class StabilityStrategy(StoryStrategy):
    name = "stability"
    retains_pcm = False


STRATEGIES = {
    GeminiStrategy.name: (GeminiStrategy, ImagenImageClient),
    StabilityStrategy.name: (StabilityStrategy, StabilityImageClient),
}


def build_strategy(settings: Settings, policy: Optional[MediaFailurePolicy] = None) -> StoryStrategy:
    if settings.strategy not in STRATEGIES:
        raise ConfigurationError(f"Unknown STORY_STRATEGY {settings.strategy!r}; expected one of {sorted(STRATEGIES)}")
    missing = settings.missing_keys()
    if missing:
        raise ConfigurationError(f"Missing API keys: {', '.join(missing)}")

    if policy is None:
        try:
            policy = MediaFailurePolicy(settings.media_failure_policy)
        except ValueError as e:
            raise ConfigurationError(f"Unknown MEDIA_FAILURE_POLICY {settings.media_failure_policy!r}") from e
    strategy_cls, image_cls = STRATEGIES[settings.strategy]
    logger.info(f"Using {strategy_cls.name} strategy with {policy.value} media failure policy")
    return strategy_cls(
        writer=StoryWriter(settings),
        images=image_cls(settings, degrade_on_error=policy == MediaFailurePolicy.degrade),
        narrator=NarrationClient(settings),
    )
