"""Development server for Gorgon.

Previews the output directory while sources change:
- HTML responses carry a small script that listens on the websocket for
  reload and error messages.
- Directories without index.html and missing files answer 404, using the
  site's own 404.html when it was built.
- Source changes trigger incremental builds; browsers reload afterwards.

Change handling is serialized through one coordinator thread. The watchdog
handler only enqueues paths; the coordinator drains the queue until no new
event arrives for ``debounce`` seconds, coalesces the batch and runs one
incremental build. Builds never overlap, and events that arrive during a
build form the next batch. When a build fails the output tree is left as it
is and connected browsers get an error message instead of a reload.

Key classes:
- DevServer: Owns the builder, the coordinator thread and both servers.
- _ReloadHandler: Static file handler with script injection and 404 pages.
- _ChangeHandler: watchdog handler feeding the change queue.
"""

from __future__ import annotations

import asyncio
import functools
import json
import queue
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import websockets
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .build import BuildReport, SiteBuilder
from .config import CONFIG_FILENAME
from .errors import GorgonError
from .logging import get_logger

logger = get_logger("server")


class _ReloadHandler(SimpleHTTPRequestHandler):
    """Serves the output directory and injects the live reload client.

    Attributes:
        reload_script: Client script; subclasses bind the websocket port.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
        if (data.type === 'error') {{
          console.error('[gorgon] ' + data.message);
          let banner = document.getElementById('gorgon-error');
          if (!banner) {{
            banner = document.createElement('pre');
            banner.id = 'gorgon-error';
            banner.style.cssText = 'position:fixed;top:0;left:0;right:0;margin:0;padding:1em;' +
              'background:#300;color:#fcc;z-index:99999;white-space:pre-wrap';
            document.body.appendChild(banner);
          }}
          banner.textContent = data.message;
        }}
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=4001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")

    def _send_html(self, status: int, encoded: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Answer 404, with the built 404.html page when there is one."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, self._inject(error_page.read_text(encoding="utf-8")))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path = self.translate_path(self.path)
        path_obj = Path(path)
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, self._inject(path_obj.read_text(encoding="utf-8")))
            return None
        return super().send_head()


class DevServer:
    """Development server with incremental rebuilds and live reload.

    Attributes:
        project_root: Root directory of the project.
        builder: SiteBuilder shared by every rebuild.
        config: Site configuration.
        output_dir: Directory where the built site is served.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
        debounce: Quiet period that closes a batch of changes.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        include_drafts: bool = False,
        builder: SiteBuilder | None = None,
    ):
        self.project_root = Path(project_root)
        self.builder = builder or SiteBuilder(self.project_root, include_drafts=include_drafts)
        self.config = self.builder.config
        self.output_dir = self.config.output_path
        self.cache_dir = self.config.cache_path
        base_http = int(http_port or self.config.port)
        if ws_port is not None:
            resolved_ws = ws_port
        elif http_port is not None or self.config.ws_port is None:
            resolved_ws = base_http + 1
        else:
            resolved_ws = self.config.ws_port
        self.http_port = base_http
        self.ws_port = resolved_ws
        self.debounce = self.config.debounce
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self._changes: queue.Queue[str] = queue.Queue()
        self._stopping = threading.Event()
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._coordinator: threading.Thread | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()

    def start(self) -> None:  # pragma: no cover - integration path
        try:
            report = self.builder.full_build()
            logger.info("%s", report.summary())
        except GorgonError as exc:
            logger.error("Initial build failed: %s", exc)
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher()
        self._coordinator = threading.Thread(
            target=self._coordinate, name="gorgon-coordinator", daemon=True
        )
        self._coordinator.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        self._stopping.set()
        if self._observer:
            self._observer.stop()
            self._observer.join()
        if self._httpd is not None:
            self._httpd.shutdown()
        self._loop.call_soon_threadsafe(self._loop.stop)

    # -- change coordination -------------------------------------------

    def enqueue(self, path: str) -> None:
        """Queue a changed project-relative path for the next rebuild."""
        self._changes.put(path)

    def next_batch(self, wait: float = 0.5) -> set[str] | None:
        """Collect one batch of changes.

        Blocks up to ``wait`` seconds for the first change, then keeps
        draining until no new change arrives for ``debounce`` seconds.

        Returns:
            The coalesced set of paths, or None when nothing changed.
        """
        try:
            first = self._changes.get(timeout=wait)
        except queue.Empty:
            return None
        batch = {first}
        while True:
            try:
                batch.add(self._changes.get(timeout=self.debounce))
            except queue.Empty:
                return batch

    def _coordinate(self) -> None:
        while not self._stopping.is_set():
            batch = self.next_batch()
            if batch:
                self.rebuild(batch)

    def rebuild(self, changed_paths: set[str]) -> BuildReport | None:
        """Run one incremental build for a batch and notify browsers.

        Returns:
            The build report, or None when the build failed fatally.
        """
        logger.info("Change detected in %d file(s); rebuilding...", len(changed_paths))
        try:
            report = self.builder.incremental_build(sorted(changed_paths))
        except GorgonError as exc:
            logger.error("Build failed: %s", exc)
            self._broadcast({"type": "error", "message": str(exc)})
            return None
        logger.info("%s", report.summary())
        if report.ok:
            self._broadcast({"type": "reload"})
        else:
            message = "\n".join(str(failure) for failure in report.failures)
            self._broadcast({"type": "error", "message": message})
        return report

    # -- HTTP and websockets -------------------------------------------

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        self._httpd = ThreadingHTTPServer(("", self.http_port), handler)
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        self._httpd.serve_forever()

    def _start_ws(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.error("WebSocket server failed to start (port %d): %s", self.ws_port, exc)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast(self, payload: dict[str, Any]) -> None:
        if not self._loop.is_running():
            logger.debug("WebSocket loop not running; dropping %s message", payload.get("type"))
            return
        message = json.dumps(payload)
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except Exception as exc:
                logger.debug("Dropping websocket client: %s", exc)
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    # -- watching ------------------------------------------------------

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for watch_path in (
            self.config.source_path,
            self.config.data_path,
            self.config.static_path,
        ):
            if watch_path.exists():
                observer.schedule(handler, str(watch_path), recursive=True)
        # gorgon.yaml lives in the project root.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def relevant_path(self, path: Path) -> str | None:
        """Return the project-relative path if ``path`` is a build input."""
        for ignored in (self.output_dir, self.cache_dir):
            if path == ignored or ignored in path.parents:
                return None
        try:
            rel = path.relative_to(self.project_root).as_posix()
        except ValueError:
            return None
        if rel == CONFIG_FILENAME:
            return rel
        for folder in (self.config.source_dir, self.config.data_dir, self.config.static_dir):
            if rel.startswith(f"{folder}/"):
                return rel
        return None


# Opened and closed-without-write events come from reads, including the build's own.
_WRITE_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}
)


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in _WRITE_EVENTS:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for raw in paths:
            rel = self.server.relevant_path(Path(raw))
            if rel is not None:
                self.server.enqueue(rel)
