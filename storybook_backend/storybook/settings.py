import os
from typing import List, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")

GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
STABILITY_API_KEY = os.getenv("STABILITY_API_KEY", "")

# "gemini" keeps raw PCM per page (audiobook export available),
# "stability" uses Stability AI images and playback-only narration.
STORY_STRATEGY = os.getenv("STORY_STRATEGY", "gemini").strip().lower()
# "degrade" swaps a failed page image for an error placeholder, "abort" discards the story.
MEDIA_FAILURE_POLICY = os.getenv("MEDIA_FAILURE_POLICY", "degrade").strip().lower()

TEXT_MODEL = os.getenv("TEXT_MODEL", "gemini-2.5-flash")
TEXT_BASE_URL = os.getenv("TEXT_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "imagen-3.0-generate-002")
TTS_MODEL = os.getenv("TTS_MODEL", "gemini-2.5-flash-preview-tts")
TTS_VOICE = os.getenv("TTS_VOICE", "Kore")
GEMINI_API_ROOT = os.getenv("GEMINI_API_ROOT", "https://generativelanguage.googleapis.com/v1beta")
STABILITY_ENDPOINT = os.getenv("STABILITY_ENDPOINT", "https://api.stability.ai/v2beta/stable-image/generate/core")

HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "60"))
HTTP_MAX_RETRIES = int(os.getenv("HTTP_MAX_RETRIES", "3"))

# Finished stories are dropped from memory after JOB_TTL_S seconds without updates,
# and the oldest finished ones go first once more than MAX_JOBS are held.
JOB_TTL_S = float(os.getenv("JOB_TTL_S", "3600"))
MAX_JOBS = int(os.getenv("MAX_JOBS", "100"))

# Comma-separated list of allowed origins for CORS (e.g., "https://app.vercel.app,https://www.example.com").
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "").strip()
if _allowed_origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _allowed_origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["*"]


class Settings(BaseModel):
    """Runtime configuration, built once and handed to the clients that need it."""

    google_api_key: str = ""
    stability_api_key: str = ""
    strategy: str = "gemini"
    media_failure_policy: str = "degrade"
    text_model: str = "gemini-2.5-flash"
    text_base_url: Optional[str] = None
    image_model: str = "imagen-3.0-generate-002"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Kore"
    gemini_api_root: str = "https://generativelanguage.googleapis.com/v1beta"
    stability_endpoint: str = "https://api.stability.ai/v2beta/stable-image/generate/core"
    http_timeout_s: float = 60.0
    http_max_retries: int = 3
    job_ttl_s: float = 3600.0
    max_jobs: int = 100
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            google_api_key=GOOGLE_API_KEY,
            stability_api_key=STABILITY_API_KEY,
            strategy=STORY_STRATEGY,
            media_failure_policy=MEDIA_FAILURE_POLICY,
            text_model=TEXT_MODEL,
            text_base_url=TEXT_BASE_URL or None,
            image_model=IMAGE_MODEL,
            tts_model=TTS_MODEL,
            tts_voice=TTS_VOICE,
            gemini_api_root=GEMINI_API_ROOT,
            stability_endpoint=STABILITY_ENDPOINT,
            http_timeout_s=HTTP_TIMEOUT_S,
            http_max_retries=HTTP_MAX_RETRIES,
            job_ttl_s=JOB_TTL_S,
            max_jobs=MAX_JOBS,
            allowed_origins=ALLOWED_ORIGINS,
        )

    def missing_keys(self) -> List[str]:
        missing = []
        if not self.google_api_key:
            missing.append("GOOGLE_API_KEY")
        if self.strategy == "stability" and not self.stability_api_key:
            missing.append("STABILITY_API_KEY")
        return missing


def has_all_keys(settings: Optional[Settings] = None) -> bool:
    settings = settings or Settings.from_env()
    missing = settings.missing_keys()
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return not missing
