"""Slideshow builder — turn an ordered list of still images into a video.

Images are downloaded concurrently, then decoded with Pillow and re-saved
as PNG frames before any process runs: an undecodable body is rejected
as a client error rather than surfacing as an ffmpeg failure.  The first
image's size fixes the frame geometry (fitted into 1920x1080 and rounded
down to even numbers, which H.264 with yuv420p requires); every image is
letterboxed into it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from PIL import Image

from .commands import build_images_to_video
from .context import PipelineContext
from .errors import InvalidRequestError
from .models import Asset, ImagesToVideoRequest

logger = logging.getLogger(__name__)

MAX_FRAME_WIDTH = 1920
MAX_FRAME_HEIGHT = 1080


def _even(value: float) -> int:
    return max(2, int(value) // 2 * 2)


def frame_size(width: int, height: int) -> tuple[int, int]:
    """Fit *width*×*height* into the frame limit, keeping the aspect ratio."""
    scale = min(1.0, MAX_FRAME_WIDTH / width, MAX_FRAME_HEIGHT / height)
    return _even(width * scale), _even(height * scale)


def prepare_frames(images: list[Asset], frames: list[Path]) -> tuple[int, int]:
    """Decode every image and re-save it as PNG at the matching *frames* path.

    The concat demuxer decodes every entry with the codec of the first, so
    the list must not mix JPEG and PNG.  Returns the slideshow frame size.
    """
    size: tuple[int, int] | None = None
    for asset, frame_path in zip(images, frames):
        try:
            with Image.open(asset.path) as img:
                img.verify()
            with Image.open(asset.path) as img:
                frame = img.convert("RGB")
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise InvalidRequestError(
                f"{asset.url} is not a decodable image: {exc}"
            ) from exc
        if size is None:
            size = frame.size
        frame.save(frame_path, "PNG")
    if size is None:
        raise InvalidRequestError("No images to inspect")
    return frame_size(*size)


def _suffix(url: str) -> str:
    # The URL already passed the extension allow-list.
    return PurePosixPath(urlparse(url).path).suffix.lower()


async def images_to_video(
    ctx: PipelineContext, request: ImagesToVideoRequest, output: Path,
) -> None:
    """Show each image for ``request.duration`` seconds, in request order."""
    if request.dropped:
        logger.info("Dropped %d unsupported image entries", len(request.dropped))

    images = await ctx.fetcher.fetch_all(
        request.image_urls,
        ctx.scope,
        [_suffix(url) for url in request.image_urls],
    )
    frames = [ctx.scope.allocate(".png") for _ in images]
    width, height = await asyncio.to_thread(prepare_frames, images, frames)
    for image in images:
        ctx.scope.release(image.path)

    list_path = ctx.scope.allocate(".txt")
    try:
        await ctx.run(
            build_images_to_video(
                frames,
                request.duration,
                list_path,
                output,
                width=width,
                height=height,
                ffmpeg=ctx.ffmpeg,
            )
        )
    finally:
        ctx.scope.release(list_path)

    logger.info(
        "Built %dx%d slideshow of %d images (%.3fs each)",
        width, height, len(images), request.duration,
    )
