"""Per-operation collaborators handed to each pipeline step."""

from __future__ import annotations

from dataclasses import dataclass

from .ffmpeg_utils import CompletedInvocation, PipelineExecutor
from .fetcher import AssetFetcher
from .models import Invocation, PipelineConfig
from .scratch import ScratchScope


@dataclass
class PipelineContext:
    config: PipelineConfig
    fetcher: AssetFetcher
    executor: PipelineExecutor
    scope: ScratchScope

    @property
    def ffmpeg(self) -> str:
        return self.config.ffmpeg_bin

    async def run(
        self, invocation: Invocation, timeout: float | None = None,
    ) -> CompletedInvocation:
        return await self.executor.run(
            invocation, self.config.default_timeout if timeout is None else timeout,
        )
