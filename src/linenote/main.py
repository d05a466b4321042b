import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Protocol

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from linenote.config import Settings, get_settings
from linenote.models.document import Document
from linenote.models.review import ReviewSubmission
from linenote.review.page import build_page


logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".pdf": "application/pdf",
}


class DocumentSource(Protocol):
    name: str
    watch_path: Path | None
    asset_dir: Path | None

    def load(self) -> Document: ...


FinishCallback = Callable[[dict | None], None]


def resolve_asset(base_dir: Path, asset_path: str) -> Path | None:
    """Resolve a request path inside base_dir, or None if it escapes it."""
    if ".." in asset_path:
        return None
    base = base_dir.resolve()
    target = (base / asset_path.lstrip("/")).resolve()
    if not target.is_relative_to(base):
        return None
    return target


def _mtime(path: Path | None) -> float | None:
    if path is None:
        return None
    try:
        return path.stat().st_mtime
    except OSError:
        return None


async def watch_events(path: Path | None, closed: asyncio.Event, settings: Settings):
    """Yield SSE events: ``reload`` when the file changes, ``ping`` as heartbeat."""
    loop = asyncio.get_running_loop()
    last_mtime = _mtime(path)
    last_ping = loop.time()
    yield {"retry": 3000}

    while not closed.is_set():
        try:
            await asyncio.wait_for(closed.wait(), timeout=settings.watch_interval)
            break
        except asyncio.TimeoutError:
            pass

        mtime = _mtime(path)
        if mtime != last_mtime:
            last_mtime = mtime
            logger.info(f"{path.name if path else 'source'} changed, reloading viewers")
            yield {"data": "reload"}

        if loop.time() - last_ping >= settings.heartbeat_interval:
            last_ping = loop.time()
            yield {"data": "ping"}


def create_app(
    source: DocumentSource,
    on_finish: FinishCallback,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the review app for one document."""
    settings = settings or get_settings()
    app = FastAPI(title=f"linenote: {source.name}", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.closed = asyncio.Event()

    def finish(result: dict | None) -> None:
        if app.state.closed.is_set():
            return
        app.state.closed.set()
        on_finish(result)

    app.state.finish = finish

    @app.get("/", response_class=HTMLResponse)
    @app.get("/index.html", response_class=HTMLResponse)
    async def index():
        try:
            document = await run_in_threadpool(source.load)
            page = build_page(document)
        except Exception as e:
            logger.exception(f"Failed to load {source.name}: {e}")
            return PlainTextResponse("Failed to load file. Please check the file.", status_code=500)
        return HTMLResponse(page, headers=NO_CACHE_HEADERS)

    @app.get("/healthz")
    async def healthz():
        return PlainTextResponse("ok")

    @app.get("/sse")
    async def sse():
        return EventSourceResponse(
            watch_events(source.watch_path, app.state.closed, settings),
            headers={"X-Accel-Buffering": "no"},
        )

    @app.post("/exit")
    async def exit_review(request: Request):
        if app.state.closed.is_set():
            return PlainTextResponse("bye")

        raw = await request.body()
        if len(raw) > settings.max_payload_bytes:
            logger.error(f"Payload for {source.name} too large ({len(raw)} bytes)")
            finish(None)
            return PlainTextResponse("payload too large", status_code=413)

        if not raw.strip():
            logger.warning(f"Empty payload for {source.name}")
            finish(None)
            return PlainTextResponse("bye")

        try:
            submission = ReviewSubmission.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error(f"payload parse error for {source.name}: {e}")
            finish(None)
            return PlainTextResponse("bad request", status_code=400)

        logger.info(f"Received {len(submission.comments)} comment(s) for {source.name}")
        finish(submission.to_output())
        return PlainTextResponse("bye")

    @app.get("/{asset_path:path}")
    async def asset(asset_path: str):
        if source.asset_dir is None:
            return PlainTextResponse("not found", status_code=404)

        target = resolve_asset(source.asset_dir, asset_path)
        if target is None:
            return PlainTextResponse("forbidden", status_code=403)
        if not target.is_file():
            return PlainTextResponse("not found", status_code=404)

        media_type = MIME_TYPES.get(target.suffix.lower(), "application/octet-stream")
        return FileResponse(target, media_type=media_type)

    return app
