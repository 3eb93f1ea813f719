"""HTTP/WebSocket surface for a host UI: recording commands and status events."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import threading
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pttscribe import __version__
from pttscribe.errors import SessionBusyError

if TYPE_CHECKING:
    from pttscribe.config import Config
    from pttscribe.pipeline import RecordingPipeline
    from pttscribe.types import StatusPayload

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


class StartRequest(BaseModel):
    model: str | None = None


class StatusBroadcaster:
    """Forwards pipeline status payloads from worker threads to WebSocket clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}

    def register(self, queue: asyncio.Queue, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._clients[queue] = loop

    def unregister(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._clients.pop(queue, None)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def __call__(self, payload: "StatusPayload") -> None:
        with self._lock:
            clients = list(self._clients.items())
        for queue, loop in clients:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, dict(payload))
            except RuntimeError:
                # Loop already closed; the client is gone
                self.unregister(queue)


_pipeline: RecordingPipeline | None = None
_config: Config | None = None
_broadcaster = StatusBroadcaster()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global _pipeline, _config

    from dotenv import load_dotenv

    from pttscribe.config import Config
    from pttscribe.pipeline import RecordingPipeline

    load_dotenv()
    _config = Config.from_env()
    _pipeline = RecordingPipeline(_config)
    _pipeline.subscribe(_broadcaster)

    try:
        await asyncio.to_thread(_pipeline.preload)
    except Exception as e:
        logger.error("Model preload failed: %s", e)

    logger.info("Server ready (model=%s)", _config.model.model)

    yield

    logger.info("Shutting down...")
    _pipeline.unsubscribe(_broadcaster)
    _pipeline.shutdown()


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Not initialized"}, status_code=503)


def _status_body(pipeline: "RecordingPipeline") -> dict:
    result = pipeline.last_result
    error = pipeline.last_error
    return {
        "status": pipeline.state.value,
        "busy": pipeline.is_busy,
        "text": result.text if result is not None else None,
        "error": str(error) if error is not None else None,
    }


def _start(model: str | None) -> JSONResponse:
    if _pipeline is None:
        return _not_ready()
    try:
        _pipeline.begin(model)
    except SessionBusyError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return JSONResponse({"status": _pipeline.state.value}, status_code=202)


def create_app() -> FastAPI:
    app = FastAPI(
        title="pttscribe",
        description="Push-to-talk recording and transcription service",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        engine_loaded = _pipeline is not None and _pipeline.engine.is_loaded
        return JSONResponse({
            "status": "healthy" if _pipeline is not None else "unhealthy",
            "model_loaded": engine_loaded,
        })

    @app.get("/config")
    async def get_config():
        if _config is None:
            return _not_ready()

        return JSONResponse({
            "model": _config.model.model,
            "language": _config.model.language,
            "output_mode": _config.output_mode.value,
            "sound_effects": _config.feedback.enabled,
        })

    @app.get("/status")
    async def get_status():
        if _pipeline is None:
            return _not_ready()
        return JSONResponse(_status_body(_pipeline))

    @app.post("/recording/start")
    async def start_recording(request: StartRequest | None = None):
        return _start(request.model if request else None)

    @app.post("/recording/stop")
    async def stop_recording():
        if _pipeline is None:
            return _not_ready()
        return JSONResponse({"stopped": _pipeline.cancel()})

    @app.websocket("/ws/status")
    async def websocket_status(websocket: WebSocket):
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue()
        _broadcaster.register(queue, asyncio.get_running_loop())

        async def forward() -> None:
            while True:
                payload = await queue.get()
                await websocket.send_json(payload)

        sender: asyncio.Task | None = None
        try:
            if _pipeline is not None:
                await websocket.send_json({"status": _pipeline.state.value})
            sender = asyncio.create_task(forward())

            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                if "text" in message and message["text"]:
                    await _handle_command(websocket, message["text"])
        except WebSocketDisconnect:
            logger.info("Status client disconnected")
        finally:
            _broadcaster.unregister(queue)
            if sender is not None:
                await _stop_task(sender)

    return app


async def _stop_task(task: asyncio.Task) -> None:
    """Cancel ``task`` and collect its outcome so a failed send is not left unretrieved."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Status forwarding stopped: %s", e)


async def _handle_command(websocket: WebSocket, text: str) -> None:
    """Accept ``{"command": "start" | "stop", "model": ...}`` messages from a client."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        await websocket.send_json({"error": "Invalid JSON"})
        return

    command = data.get("command") if isinstance(data, dict) else None
    if command == "start":
        response = _start(data.get("model"))
        if response.status_code >= 400:
            await websocket.send_json(json.loads(response.body))
    elif command == "stop":
        if _pipeline is not None:
            _pipeline.cancel()
    else:
        await websocket.send_json({"error": f"Unknown command: {command}"})


def main():
    parser = argparse.ArgumentParser(description="pttscribe server")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print(f"\n🚀 Starting pttscribe server at http://{args.host}:{args.port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "pttscribe.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
