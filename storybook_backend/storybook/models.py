from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional

from .errors import StoryValidationError

MIN_PAGES = 2
MAX_PAGES = 24


class AgeRange(str, Enum):
    early = "early"
    middle = "middle"
    late = "late"

    @property
    def label(self) -> str:
        return {
            AgeRange.early: "3 a 5 años",
            AgeRange.middle: "6 a 8 años",
            AgeRange.late: "9 a 11 años",
        }[self]


class ImageQuality(str, Enum):
    high = "high"
    placeholder = "placeholder"


class MediaFailurePolicy(str, Enum):
    degrade = "degrade"
    abort = "abort"


class StoryRequest(BaseModel):
    idea: str = ""
    age_range: AgeRange = AgeRange.early
    num_pages: int = 8
    image_quality: ImageQuality = ImageQuality.high

    def ensure_valid(self) -> None:
        if not self.idea or not self.idea.strip():
            raise StoryValidationError("idea is empty", "Por favor, introduce una idea para el cuento.")
        if not MIN_PAGES <= self.num_pages <= MAX_PAGES or self.num_pages % 2:
            raise StoryValidationError(
                f"num_pages={self.num_pages} out of range",
                f"El número de páginas debe ser par y estar entre {MIN_PAGES} y {MAX_PAGES}.",
            )

    @property
    def high_quality(self) -> bool:
        return self.image_quality == ImageQuality.high


class StoryPage(BaseModel):
    id: int
    text: str
    image_prompt: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    pcm_data: Optional[str] = None  # raw base64 PCM, 16-bit LE mono 24 kHz
    error: Optional[str] = None

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_url or self.pcm_data)


class LoadingState(BaseModel):
    is_loading: bool = False
    message: str = ""


class StoryState(BaseModel):
    request: StoryRequest = Field(default_factory=StoryRequest)
    title: str = ""
    character_description: str = ""
    pages: List[StoryPage] = Field(default_factory=list)
    current_page: int = 0
    loading: LoadingState = Field(default_factory=LoadingState)
    status: str = "queued"
    error: Optional[str] = None

    def is_ready(self) -> bool:
        return is_story_ready(self.pages)


def is_story_ready(pages: List[StoryPage]) -> bool:
    """Export gate: every page needs an image and narration. Never cache this."""
    return bool(pages) and all(p.image_url and p.has_audio for p in pages)
