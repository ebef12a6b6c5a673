"""Video joiner — concatenate an ordered list of remote videos.

Inputs rarely share geometry, frame rate or codecs, and the concat
demuxer can only stream-copy identical streams.  So every input is
first normalized (1280x720, 30 fps, H.264/AAC) concurrently, then a
single stream-copy concatenation produces the output.

Every step of a merge runs under the merge timeout, which is much longer
than the default.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .commands import build_merge, build_normalize
from .concurrency import gather_all
from .context import PipelineContext
from .models import Asset, MergeRequest

logger = logging.getLogger(__name__)


async def merge_videos(ctx: PipelineContext, request: MergeRequest, output: Path) -> None:
    """Join ``request.video_urls`` into *output*, in request order."""
    timeout = ctx.config.merge_timeout
    sources = await ctx.fetcher.fetch_all(request.video_urls, ctx.scope)

    normalized = await gather_all(
        _normalize(ctx, source, timeout) for source in sources
    )

    list_path = ctx.scope.allocate(".txt")
    try:
        await ctx.run(
            build_merge(normalized, list_path, output, ffmpeg=ctx.ffmpeg), timeout,
        )
    finally:
        ctx.scope.release(list_path)

    logger.info("Merged %d videos → %s", len(normalized), output.name)


async def _normalize(ctx: PipelineContext, source: Asset, timeout: float) -> Path:
    dest = ctx.scope.allocate(".mp4")
    await ctx.run(build_normalize(source.path, dest, ffmpeg=ctx.ffmpeg), timeout)
    # The download is no longer needed once its normalized copy exists.
    ctx.scope.release(source.path)
    return dest
