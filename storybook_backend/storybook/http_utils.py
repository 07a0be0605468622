import asyncio, json, logging
from typing import Any, Optional

import httpx

from .errors import UpstreamServiceError

logger = logging.getLogger(__name__)


async def post_with_retry(
    url: str,
    *,
    timeout: float,
    max_retries: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    label: str = "request",
    **kwargs: Any,
) -> httpx.Response:
    """
    POST and return the response; only HTTP 429 is retried (exponential backoff).

    ``label`` is the provider name; transport failures (connect, timeout) are
    raised as ``UpstreamServiceError`` attributed to it.
    """
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                r = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{label} request failed: {type(e).__name__}: {e}")
            raise UpstreamServiceError(label, str(e) or type(e).__name__) from e
        if r.status_code == 429 and attempt < max_retries:
            wait_time = 2 ** attempt
            logger.warning(f"{label} rate limited (429). Retrying in {wait_time} seconds... (attempt {attempt + 1}/{max_retries + 1})")
            await asyncio.sleep(wait_time)
            continue
        return r
    return r


def error_message_from(response: httpx.Response) -> str:
    """Best human-readable message from an error response body."""
    body = response.text
    message = f"Server responded with {response.status_code}: {response.reason_phrase}"
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip() or message
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        # Stability AI shape: {"name": ..., "errors": [...]}
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(e) for e in errors)
        if data.get("message"):
            return str(data["message"])
    return message
