import asyncio
import contextlib
import errno
import logging
import signal
import socket
import webbrowser
from dataclasses import dataclass

import uvicorn
import yaml
from fastapi import FastAPI

from linenote.config import Settings
from linenote.main import DocumentSource, create_app


logger = logging.getLogger(__name__)

RESULTS_BANNER = "=== All comments received ==="


class ReviewServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the session."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


@dataclass
class ViewerHandle:
    source: DocumentSource
    url: str
    server: ReviewServer | None = None
    app: FastAPI | None = None


def bind_available_port(host: str, start_port: int, attempts: int) -> socket.socket | None:
    """Bind the first free port in [start_port, start_port + attempts)."""
    for port in range(start_port, start_port + attempts):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                continue
            raise
        return sock
    return None


def format_results(results: list[dict]) -> str:
    """One result is printed as-is, several are wrapped under ``files``."""
    data = results[0] if len(results) == 1 else {"files": results}
    return yaml.safe_dump(data, allow_unicode=True, sort_keys=False, width=120).strip()


class ReviewSession:
    def __init__(self, sources: list[DocumentSource], settings: Settings, open_browser: bool | None = None):
        self.sources = sources
        self.settings = settings
        self.open_browser = settings.open_browser if open_browser is None else open_browser
        self.results: list[dict] = []
        self.viewers: list[ViewerHandle] = []

    def _on_finish(self, viewer: ViewerHandle, result: dict | None) -> None:
        if result is not None:
            self.results.append(result)
        viewer.server.should_exit = True
        remaining = sum(1 for v in self.viewers if not v.server.should_exit)
        logger.info(f"Server for {viewer.source.name} closed. ({remaining} remaining)")

    def _start_viewer(self, source: DocumentSource, sock: socket.socket) -> ViewerHandle:
        port = sock.getsockname()[1]
        url = f"http://localhost:{port}"
        viewer = ViewerHandle(source=source, url=url)

        viewer.app = create_app(source, lambda result: self._on_finish(viewer, result), self.settings)
        config = uvicorn.Config(
            viewer.app,
            log_level="warning",
            timeout_graceful_shutdown=1,
        )
        viewer.server = ReviewServer(config)
        self.viewers.append(viewer)
        return viewer

    def shutdown(self) -> None:
        """Stop every viewer; results collected so far are still printed."""
        logger.info("Shutting down all viewers")
        for viewer in self.viewers:
            viewer.app.state.closed.set()
            viewer.server.should_exit = True

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.shutdown)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.shutdown))

    async def _open_browser(self, url: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            opened = await loop.run_in_executor(None, webbrowser.open, url)
        except webbrowser.Error as e:
            logger.error(f"Browser launch failed: {e}")
            opened = False
        if not opened:
            logger.warning(f"Failed to open browser automatically. Please open this URL manually: {url}")

    async def _serve(self, viewer: ViewerHandle, sock: socket.socket) -> None:
        try:
            await viewer.server.serve(sockets=[sock])
        except Exception:
            logger.exception(f"Viewer for {viewer.source.name} stopped with an error")
            viewer.app.state.closed.set()
            viewer.server.should_exit = True
        finally:
            sock.close()

    async def run(self) -> list[dict]:
        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        logger.info(f"Starting servers for {len(self.sources)} file(s)...")

        tasks = []
        next_port = self.settings.base_port
        for source in self.sources:
            sock = bind_available_port(self.settings.host, next_port, self.settings.max_port_attempts)
            if sock is None:
                logger.error(
                    f"Could not find an available port for {source.name} "
                    f"after {self.settings.max_port_attempts} attempts."
                )
                continue
            next_port = sock.getsockname()[1] + 1

            viewer = self._start_viewer(source, sock)
            tasks.append(asyncio.create_task(self._serve(viewer, sock)))
            logger.info(f"Viewer started: {viewer.url}  (file: {source.name})")
            if self.open_browser:
                await self._open_browser(viewer.url)

        if tasks:
            logger.info("Use Submit & Exit in each tab, or press Ctrl+C, to finish.")
            await asyncio.gather(*tasks)
        return self.results

    def report(self) -> str:
        return f"{RESULTS_BANNER}\n{format_results(self.results)}"
