"""Media operations pipeline — fetch, transcode and publish video artifacts.

Quick start::

    import httpx
    from media_ops import (
        AssetFetcher, OperationHandlers, PipelineConfig, PipelineExecutor,
        ResultStore, ScratchSpace, TrimRequest,
    )

    config = PipelineConfig.from_env()
    async with httpx.AsyncClient(follow_redirects=True) as client:
        handlers = OperationHandlers(
            config,
            fetcher=AssetFetcher(client),
            executor=PipelineExecutor(config.default_timeout),
            scratch=ScratchSpace(config.scratch_dir),
            store=ResultStore(config.outputs_dir),
        )
        request = TrimRequest.from_payload(
            {"inputVideoUrl": "https://example.com/a.mp4", "startTime": 5, "duration": 10}
        )
        artifact = await handlers.handle(request)
"""

from .errors import (
    FetchError,
    InvalidRequestError,
    MediaOpsError,
    NoValidInputsError,
    NotFoundError,
    ProcessingError,
)
from .ffmpeg_utils import PipelineExecutor, check_dependencies
from .fetcher import AssetFetcher
from .handler import OperationHandlers
from .models import (
    AddAudioRequest,
    ImagesToVideoRequest,
    MergeRequest,
    PipelineConfig,
    ProcessedArtifact,
    ResizeRequest,
    TrimRequest,
)
from .scratch import ScratchSpace
from .store import ResultStore

__all__ = [
    "AddAudioRequest",
    "AssetFetcher",
    "FetchError",
    "ImagesToVideoRequest",
    "InvalidRequestError",
    "MediaOpsError",
    "MergeRequest",
    "NoValidInputsError",
    "NotFoundError",
    "OperationHandlers",
    "PipelineConfig",
    "PipelineExecutor",
    "ProcessedArtifact",
    "ProcessingError",
    "ResizeRequest",
    "ResultStore",
    "ScratchSpace",
    "TrimRequest",
    "check_dependencies",
]
