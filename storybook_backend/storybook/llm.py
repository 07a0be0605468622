import json, logging, random, re
from typing import Any, Dict, List, Optional

import openai

from .errors import ConfigurationError, MalformedResponseError, StoryStructureError, UpstreamServiceError, upstream_error
from .models import AgeRange
from .prompts import (
    CHARACTER_PROMPT_TEMPLATE,
    IDEA_PROMPT,
    IMAGE_STYLE,
    STORY_PROMPT_TEMPLATE,
    STORY_SCHEMA,
    SYSTEM_PROMPT,
    TITLE_PROMPT_TEMPLATE,
)
from .settings import Settings

logger = logging.getLogger(__name__)

PROVIDER = "Google AI"
FALLBACK_IDEAS = [
    "Un dragón que tiene miedo a la oscuridad.",
    "Un gatito que aprende a volar con globos.",
]

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)
_TITLE_LABEL_RE = re.compile(r"^\s*(t[ií]tulo|title)\s*:\s*", re.IGNORECASE)
_TITLE_QUOTES = "\"“”«»"


def strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    match = _FENCE_RE.match(text)
    if match and match.group(2):
        return match.group(2).strip()
    return text


def clean_title(raw: str) -> str:
    title = _TITLE_LABEL_RE.sub("", (raw or "").strip(), count=1)
    return title.strip().strip(_TITLE_QUOTES).strip()


def parse_story_pages(text: str, num_pages: int) -> List[Dict[str, str]]:
    """Parse the story JSON into ``[{"text", "imagePrompt"}]``, exactly ``num_pages`` long."""
    payload = strip_code_fence(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse story JSON: {e}. Raw response: {payload[:500]}")
        raise StoryStructureError(f"story response is not valid JSON: {e}") from e

    if not isinstance(data, list):
        logger.error(f"Story JSON is not an array: {type(data).__name__}")
        raise StoryStructureError("parsed story data is not an array")

    pages = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not isinstance(item.get("text"), str) or not item["text"].strip():
            raise StoryStructureError(f"story item {i} has no text")
        prompt = item.get("imagePrompt", item.get("image_prompt", ""))
        pages.append({"text": item["text"].strip(), "imagePrompt": str(prompt or "").strip()})

    if len(pages) < num_pages:
        raise StoryStructureError(f"expected {num_pages} pages, got {len(pages)}")
    if len(pages) > num_pages:
        logger.warning(f"Story returned {len(pages)} pages, keeping the first {num_pages}")
    return pages[:num_pages]


class StoryWriter:
    """Text generation through the OpenAI SDK (Gemini's OpenAI-compatible endpoint by default)."""

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        if client is None:
            if not settings.google_api_key:
                raise ConfigurationError("GOOGLE_API_KEY is not set; please configure your .env")
            client = openai.AsyncOpenAI(
                api_key=settings.google_api_key,
                base_url=settings.text_base_url,
                timeout=settings.http_timeout_s,
                max_retries=settings.http_max_retries,
            )
        self.client = client

    async def _complete(self, prompt: str, temperature: float = 0.8) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            resp = await self.client.chat.completions.create(
                model=self.settings.text_model,
                messages=messages,
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            logger.error(f"Text generation failed {e.status_code}: {e.message}")
            raise upstream_error(PROVIDER, e.message, e.status_code) from e
        except openai.APIConnectionError as e:
            logger.error(f"Text generation connection failed: {e}")
            raise UpstreamServiceError(PROVIDER, str(e)) from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise MalformedResponseError(PROVIDER) from e
        if not content:
            raise MalformedResponseError(PROVIDER, "empty completion")
        return content

    async def suggest_idea(self) -> str:
        try:
            text = await self._complete(IDEA_PROMPT, temperature=1.0)
        except Exception as e:
            logger.warning(f"Idea suggestion failed, using a fallback idea: {e}")
            return random.choice(FALLBACK_IDEAS)
        ideas = [line.strip(" -*•\t") for line in text.splitlines() if line.strip()]
        return random.choice(ideas) if ideas else FALLBACK_IDEAS[0]

    async def short_title(self, idea: str) -> str:
        logger.info("Requesting short title")
        raw = await self._complete(TITLE_PROMPT_TEMPLATE.format(idea=idea))
        return clean_title(raw)

    async def character_description(self, idea: str) -> str:
        logger.info("Requesting character description")
        text = await self._complete(CHARACTER_PROMPT_TEMPLATE.format(idea=idea))
        return text.strip()

    async def story_pages(self, idea: str, age_range: AgeRange, num_pages: int, character_description: str) -> List[Dict[str, str]]:
        logger.info(f"Requesting story with {num_pages} pages")
        prompt = STORY_PROMPT_TEMPLATE.format(
            age_label=age_range.label,
            idea=idea,
            num_pages=num_pages,
            schema=STORY_SCHEMA,
            style=IMAGE_STYLE,
            character_description=character_description,
        )
        text = await self._complete(prompt, temperature=0.7)
        pages = parse_story_pages(text, num_pages)
        logger.info(f"Story structure parsed: {len(pages)} pages")
        return pages
