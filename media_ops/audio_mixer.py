"""Overlay a mix of two audio tracks onto a video."""

from __future__ import annotations

import logging
from pathlib import Path

from .commands import build_add_audio
from .context import PipelineContext
from .models import AddAudioRequest

logger = logging.getLogger(__name__)


async def add_audio_to_video(
    ctx: PipelineContext, request: AddAudioRequest, output: Path,
) -> None:
    """Mix content and background audio at their gains over the video.

    The three downloads run concurrently.  The video stream is copied;
    only the mixed audio is encoded.
    """
    video, content, background = await ctx.fetcher.fetch_all(
        [request.video_url, request.content_audio_url, request.background_audio_url],
        ctx.scope,
    )
    await ctx.run(
        build_add_audio(
            video.path,
            content.path,
            background.path,
            output,
            content_volume=request.content_volume,
            background_volume=request.background_volume,
            ffmpeg=ctx.ffmpeg,
        )
    )
    logger.info(
        "Added audio to %s (content=%.2f, background=%.2f)",
        request.video_url,
        request.content_volume,
        request.background_volume,
    )
