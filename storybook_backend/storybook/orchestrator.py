import asyncio, logging, traceback
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import StateGraph, END

from .errors import ConfigurationError, StoryValidationError, user_message_for
from .image_client import placeholder_url
from .models import LoadingState, MAX_PAGES, MediaFailurePolicy, StoryPage, StoryRequest, StoryState
from .strategies import StoryStrategy

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[StoryState], None]

MSG_TITLE = "Creando un título mágico..."
MSG_CHARACTER = "Creando la base de tu cuento..."
MSG_STORY = "Escribiendo la historia..."
MSG_PAGE = "Creando página {current}/{total}... (Ilustración y narración)"
MSG_RETRY = "Rehaciendo la página {current}... (Ilustración y narración)"
MSG_IMAGE_FAILED = "No se pudo crear la ilustración de esta página."


def _as_fields(state: StoryState) -> Dict[str, Any]:
    return {name: getattr(state, name) for name in StoryState.model_fields}


class StoryPipeline:
    """
    Drives title -> character -> story -> per-page media as a LangGraph state machine.

    The pipeline is the only writer of the page list. Every transition is
    published to ``on_update`` as a deep copy; observers never get the live state.
    Under ``degrade`` a failed page keeps going with an error placeholder image
    (or without narration) and ``page.error`` set; under ``abort`` the first
    media failure discards the whole story.
    """

    def __init__(self, strategy: StoryStrategy, policy: MediaFailurePolicy = MediaFailurePolicy.degrade,
                 on_update: Optional[UpdateCallback] = None):
        self.strategy = strategy
        self.policy = policy
        self.on_update = on_update
        self.latest: Optional[StoryState] = None
        self.graph = self._build_graph()

    # -- publishing ---------------------------------------------------------

    def _publish(self, state: StoryState) -> None:
        self.latest = state.model_copy(deep=True)
        if self.on_update:
            self.on_update(self.latest.model_copy(deep=True))

    def _emit(self, state: StoryState, **changes: Any) -> Dict[str, Any]:
        self._publish(state.model_copy(update=changes))
        return changes

    def _loading(self, state: StoryState, message: str) -> LoadingState:
        loading = LoadingState(is_loading=True, message=message)
        self._emit(state, loading=loading)
        return loading

    # -- graph nodes --------------------------------------------------------

    async def node_title(self, state: StoryState) -> Dict[str, Any]:
        loading = self._loading(state, MSG_TITLE)
        title = await self.strategy.title(state.request.idea)
        logger.info(f"Story title: {title}")
        return self._emit(state, loading=loading, title=title)

    async def node_character(self, state: StoryState) -> Dict[str, Any]:
        loading = self._loading(state, MSG_CHARACTER)
        description = await self.strategy.character_description(state.request.idea)
        return self._emit(state, loading=loading, character_description=description)

    async def node_story(self, state: StoryState) -> Dict[str, Any]:
        loading = self._loading(state, MSG_STORY)
        req = state.request
        raw_pages = await self.strategy.story(req.idea, req.age_range, req.num_pages, state.character_description)
        pages = [StoryPage(id=i, text=p["text"], image_prompt=p["imagePrompt"]) for i, p in enumerate(raw_pages)]
        logger.info(f"Story text ready: {len(pages)} pages")
        return self._emit(state, loading=loading, pages=pages, current_page=0)

    async def node_page_media(self, state: StoryState) -> Dict[str, Any]:
        index = state.current_page
        total = len(state.pages)
        loading = self._loading(state, MSG_PAGE.format(current=index + 1, total=total))
        logger.info(f"Processing page {index + 1}/{total}")
        pages = await self._acquire_media(state.model_copy(update={"loading": loading}), index)
        return self._emit(state, loading=loading, pages=pages, current_page=index + 1)

    @staticmethod
    def route_pages(state: StoryState) -> str:
        return "page_media" if state.current_page < len(state.pages) else END

    def _build_graph(self):
        g = StateGraph(StoryState)
        g.add_node("title", self.node_title)
        g.add_node("character", self.node_character)
        g.add_node("story", self.node_story)
        g.add_node("page_media", self.node_page_media)
        g.set_entry_point("title")
        g.add_edge("title", "character")
        g.add_edge("character", "story")
        g.add_conditional_edges("story", self.route_pages, {"page_media": "page_media", END: END})
        g.add_conditional_edges("page_media", self.route_pages, {"page_media": "page_media", END: END})
        return g.compile()

    # -- per-page media -----------------------------------------------------

    async def _acquire_media(self, state: StoryState, index: int) -> List[StoryPage]:
        """Image and narration in flight together; each result is merged and published as it lands."""
        pages = [p.model_copy() for p in state.pages]
        page = pages[index] = pages[index].model_copy(update={"error": None})
        hq = state.request.high_quality

        def merge(**changes: Any) -> None:
            pages[index] = pages[index].model_copy(update=changes)
            self._publish(state.model_copy(update={"pages": pages}))

        async def image() -> None:
            url = await self.strategy.image(page.image_prompt, hq)
            if url == placeholder_url(is_error=True):
                # the image client already degraded
                merge(image_url=url, error=MSG_IMAGE_FAILED)
            else:
                merge(image_url=url)

        async def narration() -> None:
            result = await self.strategy.narration(page.text)
            merge(audio_url=result.audio_url, pcm_data=result.pcm_data)

        results = await asyncio.gather(image(), narration(), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            if not isinstance(failure, Exception) or isinstance(failure, ConfigurationError):
                raise failure
        if not failures:
            return pages

        image_error, narration_error = results
        if self.policy == MediaFailurePolicy.abort:
            logger.error(f"Media generation failed for page {index + 1}; aborting story")
            raise failures[0]

        if isinstance(image_error, Exception):
            logger.warning(f"Image failed for page {index + 1}, using error placeholder: {image_error}")
            merge(image_url=placeholder_url(is_error=True), error=user_message_for(image_error))
        if isinstance(narration_error, Exception):
            logger.warning(f"Narration failed for page {index + 1}, continuing without audio: {narration_error}")
            merge(audio_url=None, pcm_data=None, error=user_message_for(narration_error))
        return pages

    # -- entry points -------------------------------------------------------

    async def run(self, request: StoryRequest) -> StoryState:
        """Generate a full story. Failures end up in ``state.error``; nothing is raised."""
        state = StoryState(request=request, status="running")
        try:
            request.ensure_valid()
            logger.info(f"Starting story pipeline: {request.num_pages} pages, {request.age_range.value}, {request.image_quality.value}")
            final = await self.graph.ainvoke(_as_fields(state), config={"recursion_limit": MAX_PAGES + 10})
            state = StoryState.model_validate(dict(final)).model_copy(update={"status": "succeeded"})
            logger.info(f"Story pipeline completed: {state.title!r}")
        except Exception as e:
            if isinstance(e, StoryValidationError):
                logger.info(f"Story request rejected: {e}")
            else:
                logger.error(f"Story pipeline failed: {e}")
                logger.error(f"Full traceback: {traceback.format_exc()}")
            # a story without its mandatory text or media is never shown
            state = StoryState(request=request, status="failed", error=user_message_for(e))
        finally:
            state = state.model_copy(update={"loading": LoadingState()})
            self._publish(state)
        return state

    async def regenerate_page(self, state: StoryState, page_id: int) -> StoryState:
        """Re-acquire one page's image and narration under the same failure policy."""
        if not 0 <= page_id < len(state.pages):
            raise StoryValidationError(f"page {page_id} does not exist", "La página indicada no existe.")
        loading = LoadingState(is_loading=True, message=MSG_RETRY.format(current=page_id + 1))
        working = state.model_copy(update={"loading": loading, "status": "running", "error": None})
        self._publish(working)
        try:
            pages = await self._acquire_media(working, page_id)
            working = working.model_copy(update={"pages": pages, "status": "succeeded"})
        except Exception as e:
            logger.error(f"Retry of page {page_id + 1} failed: {e}")
            working = StoryState(request=state.request, status="failed", error=user_message_for(e))
        finally:
            working = working.model_copy(update={"loading": LoadingState()})
            self._publish(working)
        return working
