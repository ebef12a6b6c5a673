"""Top-level orchestrator for pipeline operations.

``OperationHandlers.handle`` runs one validated operation end to end:

1. Open a scratch scope for the operation.
2. Reserve a pending output path in scratch space.
3. Run the operation's step function: fetch inputs, build and run its
   invocation(s).
4. Publish the pending output: the ``ResultStore`` moves it into the
   outputs directory and registers it.

Leaving the scope deletes every download, intermediate and concat list
the operation allocated, whether it succeeds, fails or is
cancelled.  Outputs are rendered in scratch, so the outputs directory
only ever holds complete files; a partial render left by a crash is
removed by the startup sweep and never re-indexed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from .audio_mixer import add_audio_to_video
from .context import PipelineContext
from .ffmpeg_utils import PipelineExecutor
from .fetcher import AssetFetcher
from .joiner import merge_videos
from .models import (
    AddAudioRequest,
    ImagesToVideoRequest,
    MergeRequest,
    Operation,
    PipelineConfig,
    ProcessedArtifact,
    ResizeRequest,
    TrimRequest,
)
from .scratch import ScratchSpace
from .slideshow import images_to_video
from .store import ResultStore
from .transforms import resize_video, trim_video

logger = logging.getLogger(__name__)

Step = Callable[[PipelineContext, Any, Path], Awaitable[None]]

STEPS: dict[type, Step] = {
    TrimRequest: trim_video,
    ResizeRequest: resize_video,
    MergeRequest: merge_videos,
    AddAudioRequest: add_audio_to_video,
    ImagesToVideoRequest: images_to_video,
}

OUTPUT_SUFFIX = ".mp4"


class OperationHandlers:
    """Composes fetcher, scratch space, executor and store per operation."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        fetcher: AssetFetcher,
        executor: PipelineExecutor,
        scratch: ScratchSpace,
        store: ResultStore,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.executor = executor
        self.scratch = scratch
        self.store = store

    async def handle(self, operation: Operation) -> ProcessedArtifact:
        """Run *operation* and return its registered artifact."""
        step = STEPS.get(type(operation))
        if step is None:
            raise TypeError(f"Unsupported operation: {type(operation).__name__}")

        logger.info("Starting %s operation", operation.kind)
        with self.scratch.scope() as scope:
            pending = scope.allocate(OUTPUT_SUFFIX)
            ctx = PipelineContext(
                config=self.config,
                fetcher=self.fetcher,
                executor=self.executor,
                scope=scope,
            )
            await step(ctx, operation, pending)
            artifact = self.store.publish(pending)
            scope.keep(pending)

        logger.info("Finished %s operation → %s", operation.kind, artifact.artifact_id)
        return artifact
