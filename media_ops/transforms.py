"""Single-input video transforms: trim and resize.

Both download one source video, run one re-encoding invocation into the
pending output path, and let the scratch scope remove the download.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .commands import build_resize, build_trim
from .context import PipelineContext
from .models import ResizeRequest, TrimRequest

logger = logging.getLogger(__name__)


async def trim_video(ctx: PipelineContext, request: TrimRequest, output: Path) -> None:
    """Cut ``request.duration`` seconds starting at ``request.start``."""
    (source,) = await ctx.fetcher.fetch_all([request.input_url], ctx.scope)
    await ctx.run(
        build_trim(
            source.path, output, request.start, request.duration, ffmpeg=ctx.ffmpeg,
        )
    )
    logger.info(
        "Trimmed %s from %.3fs for %.3fs", request.input_url, request.start, request.duration,
    )


async def resize_video(ctx: PipelineContext, request: ResizeRequest, output: Path) -> None:
    (source,) = await ctx.fetcher.fetch_all([request.input_url], ctx.scope)
    await ctx.run(
        build_resize(
            source.path, output, request.width, request.height, ffmpeg=ctx.ffmpeg,
        )
    )
    logger.info("Resized %s to %dx%d", request.input_url, request.width, request.height)
