"""HTTP entry point for the media operations service.

Each POST endpoint parses its JSON body into a typed operation, runs it
through ``OperationHandlers`` and answers with a download URL for the
finished artifact.  ``GET /download/{filename}`` serves artifacts.

Request examples::

    POST /trim-video          {"inputVideoUrl": "...", "startTime": 5, "duration": 10}
    POST /resize-video        {"inputVideoUrl": "...", "width": 640, "height": 360}
    POST /merge-videos        {"videos": ["...", "..."]}
    POST /add-audio-to-video  {"videoUrl": "...", "contentAudioUrl": "...",
                               "backgroundAudioUrl": "...", "contentVolume": 1.0,
                               "backgroundVolume": 0.3}
    POST /images-to-video     {"imageUrls": [{"url": "..."}], "duration": 2}

Errors come back as ``{"error": "..."}`` with the status carried by the
``MediaOpsError`` subclass (400, 404, 500, 502).

Run with ``python server.py`` or ``uvicorn server:app``.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse

from media_ops import (
    AddAudioRequest,
    AssetFetcher,
    ImagesToVideoRequest,
    InvalidRequestError,
    MediaOpsError,
    MergeRequest,
    OperationHandlers,
    PipelineConfig,
    PipelineExecutor,
    ProcessedArtifact,
    ResizeRequest,
    ResultStore,
    ScratchSpace,
    TrimRequest,
    check_dependencies,
)
from s3_utils import mirror_artifact

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    config: PipelineConfig | None = None,
    *,
    executor: PipelineExecutor | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    check_engine: bool = True,
) -> FastAPI:
    """Build the FastAPI app.

    *executor* and *transport* replace the real process runner and
    network stack (used by tests); *check_engine* skips the startup
    ffmpeg check.
    """
    config = config or PipelineConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if check_engine:
            check_dependencies(config.ffmpeg_bin)

        scratch = ScratchSpace(config.scratch_dir)
        scratch.ensure_root()
        scratch.sweep()
        store = ResultStore(config.outputs_dir)
        store.load()

        async with httpx.AsyncClient(
            follow_redirects=True, transport=transport,
        ) as client:
            app.state.store = store
            app.state.handlers = OperationHandlers(
                config,
                fetcher=AssetFetcher(
                    client,
                    timeout=config.fetch_timeout,
                    chunk_size=config.fetch_chunk_size,
                    max_bytes=config.max_download_bytes,
                ),
                executor=executor or PipelineExecutor(config.default_timeout),
                scratch=scratch,
                store=store,
            )
            logger.info(
                "Media ops service ready (storage=%s, ffmpeg=%s)",
                config.storage_root, config.ffmpeg_bin,
            )
            yield

    app = FastAPI(title="media-ops", lifespan=lifespan)
    app.state.config = config
    _register_error_handlers(app)
    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return payload


def _download_url(request: Request, artifact: ProcessedArtifact) -> str:
    config: PipelineConfig = request.app.state.config
    base = config.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/download/{artifact.artifact_id}"


async def _run(
    request: Request, operation: Any, background: BackgroundTasks,
) -> str:
    handlers: OperationHandlers = request.app.state.handlers
    artifact = await handlers.handle(operation)

    bucket = request.app.state.config.mirror_bucket
    if bucket:
        background.add_task(mirror_artifact, bucket, artifact)
    return _download_url(request, artifact)


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MediaOpsError)
    async def media_ops_error(request: Request, exc: MediaOpsError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc,
        )
        return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:
    @app.post("/trim-video")
    async def trim_video(request: Request, background: BackgroundTasks):
        operation = TrimRequest.from_payload(await _json_body(request))
        url = await _run(request, operation, background)
        return {"trimmedVideoUrl": url}

    @app.post("/resize-video")
    async def resize_video(request: Request, background: BackgroundTasks):
        operation = ResizeRequest.from_payload(await _json_body(request))
        url = await _run(request, operation, background)
        return {"message": "Video resized successfully", "outputUrl": url}

    @app.post("/merge-videos")
    async def merge_videos(request: Request, background: BackgroundTasks):
        operation = MergeRequest.from_payload(await _json_body(request))
        url = await _run(request, operation, background)
        return {"message": "Videos merged successfully", "outputUrl": url}

    @app.post("/add-audio-to-video")
    async def add_audio_to_video(request: Request, background: BackgroundTasks):
        operation = AddAudioRequest.from_payload(await _json_body(request))
        url = await _run(request, operation, background)
        return {"message": "Audio added to video successfully", "outputUrl": url}

    @app.post("/images-to-video")
    async def images_to_video(request: Request, background: BackgroundTasks):
        operation = ImagesToVideoRequest.from_payload(await _json_body(request))
        url = await _run(request, operation, background)
        return {"message": "Video created successfully", "videoUrl": url}

    @app.get("/download/{filename}")
    async def download(request: Request, filename: str):
        store: ResultStore = request.app.state.store
        artifact = store.get(filename)
        return FileResponse(
            artifact.path, media_type="video/mp4", filename=artifact.artifact_id,
        )


app = create_app()


def main() -> None:
    config = PipelineConfig.from_env()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
