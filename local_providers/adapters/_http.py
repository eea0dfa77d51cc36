"""
HTTP plumbing shared by the adapters: error extraction and cancellation.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Optional, TypeVar

import httpx

from local_providers.adapters.base import ProviderRequestError, RequestCancelledError

T = TypeVar("T")


def parse_error_message(status_code: int, body: bytes) -> str:
    """
    Extract a user-friendly error message from a backend error body.

    OpenAI-style servers return {"error": {"message": "..."}}, TGI and
    Ollama return {"error": "..."}. Anything else falls back to a body
    excerpt.
    """
    try:
        data = json.loads(body)
        if isinstance(data, dict):
            error = data.get("error", {})
            if isinstance(error, dict):
                message = error.get("message", "")
                if message:
                    return message
            elif isinstance(error, str) and error:
                return error
    except (ValueError, UnicodeDecodeError):
        pass
    return f"HTTP {status_code}: {body[:200].decode(errors='replace')}"


def request_error(provider: str, label: str, response: httpx.Response, body: bytes) -> ProviderRequestError:
    """Build the error raised when a backend answers with a non-success status."""
    status_text = response.reason_phrase or f"HTTP {response.status_code}"
    detail = parse_error_message(response.status_code, body)
    return ProviderRequestError(
        provider,
        f"{label} API error: {status_text} ({detail})",
        status_code=response.status_code,
        status_text=status_text,
    )


async def race_cancel(
    provider: str, awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]
) -> T:
    """
    Await `awaitable`, aborting it if `cancel_event` fires first.

    Raises:
        RequestCancelledError: the event was (or became) set before completion
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(provider, f"{provider} request cancelled")

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
            # Let the cancelled request unwind before the client is closed
            await asyncio.gather(work, return_exceptions=True)

    if work.cancelled():
        raise RequestCancelledError(provider, f"{provider} request cancelled")
    return work.result()


@asynccontextmanager
async def open_stream(
    provider: str,
    client: httpx.AsyncClient,
    url: str,
    cancel_event: Optional[asyncio.Event],
    **kwargs,
) -> AsyncIterator[httpx.Response]:
    """
    POST `url` as a streaming request, racing the header wait against `cancel_event`.

    Nothing is sent when the event is already set. The response is closed
    on exit.
    """
    request = client.build_request("POST", url, **kwargs)
    response = await race_cancel(provider, client.send(request, stream=True), cancel_event)
    try:
        yield response
    finally:
        await response.aclose()
