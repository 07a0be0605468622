import asyncio
import logging
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .epub import export_epub
from .errors import ConfigurationError, ExportError, StoryError, StoryValidationError
from .exports import ExportFile, export_audiobook, export_html
from .jobs import JobStore
from .models import MediaFailurePolicy, StoryRequest
from .orchestrator import StoryPipeline
from .settings import Settings, has_all_keys
from .strategies import StoryStrategy, build_strategy

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = Settings.from_env()
jobs = JobStore(ttl_s=settings.job_ttl_s, max_jobs=settings.max_jobs)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # a missing key must not stop /health from answering
    app.state.strategy = None
    app.state.strategy_error = None
    try:
        app.state.strategy = build_strategy(settings, get_policy())
    except ConfigurationError as e:
        logger.warning(f"Story generation unavailable: {e}")
        app.state.strategy_error = str(e)
    yield


app = FastAPI(title="Cuentos Mágicos AI Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def get_strategy(request: Request) -> StoryStrategy:
    """The strategy built at startup; configuration problems surface per request."""
    strategy = getattr(request.app.state, "strategy", None)
    if strategy is None:
        raise ConfigurationError(getattr(request.app.state, "strategy_error", None) or "strategy not configured")
    return strategy


def get_policy() -> MediaFailurePolicy:
    try:
        return MediaFailurePolicy(settings.media_failure_policy)
    except ValueError as e:
        raise ConfigurationError(f"Unknown MEDIA_FAILURE_POLICY {settings.media_failure_policy!r}") from e


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors())
    logger.info(f"{request.url.path} rejected invalid fields: {fields}")
    return JSONResponse(status_code=400, content={"error": StoryValidationError.user_message})


@app.exception_handler(StoryError)
async def story_error_handler(request: Request, exc: StoryError):
    if isinstance(exc, StoryValidationError):
        status = 400
    elif isinstance(exc, ExportError):
        status = 409
    elif isinstance(exc, ConfigurationError):
        status = 500
    else:
        status = 502
    logger.error(f"{request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"error": exc.user_message})


def _job_or_404(job_id: str):
    job = jobs.get_job(job_id)
    if not job:
        raise HTTPException(404, "job not found")
    return job


def _download(export: ExportFile) -> Response:
    ascii_name = export.filename.encode("ascii", "ignore").decode("ascii") or "cuento"
    disposition = f'attachment; filename="{ascii_name}"; filename*=UTF-8\'\'{quote(export.filename)}'
    return Response(content=export.content, media_type=export.media_type, headers={"Content-Disposition": disposition})


@app.get("/health")
def health():
    keys_ok = has_all_keys(settings)
    logger.info(f"Health check: API keys present = {keys_ok}")
    return {"ok": True, "has_keys": keys_ok, "strategy": settings.strategy}


@app.post("/v1/ideas:suggest")
async def suggest_idea(strategy: StoryStrategy = Depends(get_strategy)):
    return {"idea": await strategy.suggest_idea()}


@app.post("/v1/stories:start")
async def start_story(req: StoryRequest,
                      strategy: StoryStrategy = Depends(get_strategy),
                      policy: MediaFailurePolicy = Depends(get_policy)):
    req.ensure_valid()
    logger.info(f"Starting story for idea: {req.idea[:50]}...")

    job = jobs.create_job(req, retains_pcm=strategy.retains_pcm)
    job_id = job.job_id
    job.pipeline = StoryPipeline(strategy, policy, on_update=lambda state: jobs.publish(job_id, state))
    job.task = asyncio.create_task(job.pipeline.run(req))
    return {"job_id": job_id, "status": "queued"}


@app.get("/v1/stories/{job_id}")
async def story_status(job_id: str):
    job = _job_or_404(job_id)
    payload = job.state.model_dump(mode="json")
    payload["job_id"] = job_id
    payload["ready"] = job.state.is_ready()
    return payload


@app.delete("/v1/stories/{job_id}")
async def discard_story(job_id: str):
    if not jobs.discard(job_id):
        raise HTTPException(404, "job not found")
    return {"job_id": job_id, "status": "discarded"}


@app.post("/v1/stories/{job_id}/pages/{page_id}:retry")
async def retry_page(job_id: str, page_id: int):
    job = _job_or_404(job_id)
    if job.running or job.state.loading.is_loading:
        raise HTTPException(409, "story is still being generated")
    if job.state.status != "succeeded":
        raise HTTPException(409, "story has no pages to retry")
    state = await job.pipeline.regenerate_page(job.state, page_id)
    payload = state.model_dump(mode="json")
    payload["job_id"] = job_id
    payload["ready"] = state.is_ready()
    return payload


@app.get("/v1/stories/{job_id}/export/{fmt}")
async def export_story(job_id: str, fmt: str):
    job = _job_or_404(job_id)
    if fmt not in ("html", "epub", "wav"):
        raise HTTPException(404, f"unknown export format {fmt}")
    state = job.state
    if not state.is_ready():
        raise ExportError("story not ready", "El cuento aún no está listo para exportar.")

    if fmt == "html":
        export = export_html(state.pages, state.title)
    elif fmt == "epub":
        export = await export_epub(state.pages, state.title)
    else:
        export = export_audiobook(state.pages, state.title, retains_pcm=job.retains_pcm)
    logger.info(f"Exported job {job_id} as {export.filename} ({len(export.content)} bytes)")
    return _download(export)
