"""Data models for the media pipeline.

All structured data flows through these dataclasses.  Request types
parse raw JSON payloads through ``from_payload`` and raise
``InvalidRequestError`` before any network or process work happens, so
handlers only ever see validated values.
"""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, ClassVar, Union
from urllib.parse import urlparse

from .errors import InvalidRequestError, NoValidInputsError

# Extensions accepted for slideshow frames, compared case-insensitively.
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})

_TIMECODE_RE = re.compile(r"^(?:(\d+):)?(?:(\d{1,2}):)?(\d{1,2}(?:\.\d+)?)$")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class PipelineConfig:
    """Service-wide configuration.

    Every tunable is a named field with its default, so tests can build
    one directly and production reads the environment via ``from_env``.
    """

    storage_root: Path = Path("./storage")
    ffmpeg_bin: str = "ffmpeg"

    # Process execution
    default_timeout: float = 60.0      # seconds, per invocation, non-merge
    merge_timeout: float = 600.0       # seconds, per invocation inside a merge

    # Asset retrieval
    fetch_timeout: float = 120.0       # seconds, per download
    fetch_chunk_size: int = 1024 * 1024
    max_download_bytes: int = 500 * 1024 * 1024  # 0 disables the ceiling

    # HTTP surface
    public_base_url: str | None = None
    mirror_bucket: str | None = None
    port: int = 8080
    log_level: str = "INFO"

    @property
    def scratch_dir(self) -> Path:
        return self.storage_root / "scratch"

    @property
    def outputs_dir(self) -> Path:
        return self.storage_root / "outputs"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> PipelineConfig:
        """Construct from ``MEDIA_OPS_*`` environment variables (plus ``PORT``)."""
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(f"MEDIA_OPS_{name}")
            return value if value else None

        defaults = cls()
        return cls(
            storage_root=Path(get("STORAGE_ROOT") or defaults.storage_root),
            ffmpeg_bin=get("FFMPEG_BIN") or defaults.ffmpeg_bin,
            default_timeout=float(get("DEFAULT_TIMEOUT") or defaults.default_timeout),
            merge_timeout=float(get("MERGE_TIMEOUT") or defaults.merge_timeout),
            fetch_timeout=float(get("FETCH_TIMEOUT") or defaults.fetch_timeout),
            fetch_chunk_size=int(get("FETCH_CHUNK_SIZE") or defaults.fetch_chunk_size),
            max_download_bytes=int(
                get("MAX_DOWNLOAD_BYTES") or defaults.max_download_bytes
            ),
            public_base_url=get("PUBLIC_BASE_URL"),
            mirror_bucket=get("MIRROR_BUCKET"),
            port=int(env.get("PORT") or defaults.port),
            log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
        )


# ---------------------------------------------------------------------------
# Assets, invocations and artifacts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Asset:
    """A remote media reference and the scratch file it was downloaded to."""

    url: str
    path: Path
    size: int = 0


@dataclass(frozen=True)
class Invocation:
    """One fully-specified call to the processing engine.

    ``args`` is passed verbatim to the process spawn, never through a
    shell.  ``support_files`` are (path, text) pairs the executor writes
    before spawning, e.g. concat lists; their paths are owned by the
    caller's scratch scope.
    """

    args: tuple[str, ...]
    inputs: tuple[Path, ...]
    output: Path
    description: str = ""
    support_files: tuple[tuple[Path, str], ...] = ()


@dataclass(frozen=True)
class ProcessedArtifact:
    """The final, immutable output of a completed operation."""

    artifact_id: str
    path: Path


# ---------------------------------------------------------------------------
# Payload validation helpers
# ---------------------------------------------------------------------------

def _is_http_url(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _require_url(payload: dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None or value == "":
        raise InvalidRequestError(f"Missing required field: {name}")
    if not _is_http_url(value):
        raise InvalidRequestError(f"{name} must be an http(s) URL")
    return value.strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite(value: Any) -> float | None:
    """``float(value)`` if finite, else None (NaN and Infinity included)."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _parse_seconds(value: Any, name: str) -> float:
    """Accept a number of seconds or an ``[HH:]MM:SS[.fff]`` timecode."""
    if _is_number(value):
        number = _finite(value)
        if number is not None:
            return number
    elif isinstance(value, str):
        text = value.strip()
        number = _finite(text)
        if number is not None:
            return number
        match = _TIMECODE_RE.match(text)
        if match and ":" in text:
            parts = [float(p) for p in text.split(":")]
            seconds = 0.0
            for part in parts:
                seconds = seconds * 60 + part
            return seconds
    raise InvalidRequestError(f"{name} must be a number of seconds or a HH:MM:SS timecode")


def _require_seconds(payload: dict[str, Any], name: str, *, positive: bool) -> float:
    value = payload.get(name)
    if value is None or value == "":
        raise InvalidRequestError(f"Missing required field: {name}")
    seconds = _parse_seconds(value, name)
    if seconds < 0 or (positive and seconds == 0):
        qualifier = "greater than zero" if positive else "zero or greater"
        raise InvalidRequestError(f"{name} must be {qualifier}")
    return seconds


def _require_dimension(payload: dict[str, Any], name: str) -> int:
    value = payload.get(name)
    if value is None or value == "":
        raise InvalidRequestError(f"Missing required field: {name}")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidRequestError(f"{name} must be a positive integer")
    if value % 2:
        raise InvalidRequestError(f"{name} must be even for H.264 output")
    return value


def _optional_volume(payload: dict[str, Any], name: str) -> float:
    # Only an absent / null field means "unset"; an explicit 0 mutes the track.
    value = payload.get(name)
    if value is None:
        return 1.0
    number = _finite(value) if _is_number(value) else None
    if number is None or number < 0:
        raise InvalidRequestError(f"{name} must be a non-negative number")
    return number


def has_image_extension(url: str) -> bool:
    """True if the URL path ends in an allow-listed image extension."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")
    return suffix in IMAGE_EXTENSIONS


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrimRequest:
    kind: ClassVar[str] = "trim"

    input_url: str
    start: float
    duration: float

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TrimRequest:
        return cls(
            input_url=_require_url(payload, "inputVideoUrl"),
            start=_require_seconds(payload, "startTime", positive=False),
            duration=_require_seconds(payload, "duration", positive=True),
        )


@dataclass(frozen=True)
class ResizeRequest:
    kind: ClassVar[str] = "resize"

    input_url: str
    width: int
    height: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ResizeRequest:
        return cls(
            input_url=_require_url(payload, "inputVideoUrl"),
            width=_require_dimension(payload, "width"),
            height=_require_dimension(payload, "height"),
        )


@dataclass(frozen=True)
class MergeRequest:
    kind: ClassVar[str] = "merge"

    video_urls: tuple[str, ...]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> MergeRequest:
        videos = payload.get("videos")
        if not isinstance(videos, list) or not videos:
            raise InvalidRequestError("videos must be a non-empty list of URLs")
        for idx, url in enumerate(videos):
            if not _is_http_url(url):
                raise InvalidRequestError(f"videos[{idx}] must be an http(s) URL")
        return cls(video_urls=tuple(url.strip() for url in videos))


@dataclass(frozen=True)
class AddAudioRequest:
    kind: ClassVar[str] = "add-audio"

    video_url: str
    content_audio_url: str
    background_audio_url: str
    content_volume: float = 1.0
    background_volume: float = 1.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddAudioRequest:
        return cls(
            video_url=_require_url(payload, "videoUrl"),
            content_audio_url=_require_url(payload, "contentAudioUrl"),
            background_audio_url=_require_url(payload, "backgroundAudioUrl"),
            content_volume=_optional_volume(payload, "contentVolume"),
            background_volume=_optional_volume(payload, "backgroundVolume"),
        )


@dataclass(frozen=True)
class ImagesToVideoRequest:
    kind: ClassVar[str] = "images-to-video"

    image_urls: tuple[str, ...]
    duration: float
    dropped: tuple[Any, ...] = field(default=(), compare=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ImagesToVideoRequest:
        """Parse and filter the image list.

        Entries are ``{"url": ...}`` objects (bare strings are tolerated).
        Anything without a string http(s) URL ending in jpg/jpeg/png is
        dropped; if nothing survives, ``NoValidInputsError`` is raised.
        """
        entries = payload.get("imageUrls")
        if not isinstance(entries, list) or not entries:
            raise InvalidRequestError("imageUrls must be a non-empty list")
        duration = _require_seconds(payload, "duration", positive=True)

        kept: list[str] = []
        dropped: list[Any] = []
        for entry in entries:
            url = entry.get("url") if isinstance(entry, dict) else entry
            if _is_http_url(url) and has_image_extension(url.strip()):
                kept.append(url.strip())
            else:
                dropped.append(entry)

        if not kept:
            raise NoValidInputsError(
                "No valid images provided; supported formats are "
                + ", ".join(sorted(IMAGE_EXTENSIONS))
            )
        return cls(image_urls=tuple(kept), duration=duration, dropped=tuple(dropped))


Operation = Union[
    TrimRequest, ResizeRequest, MergeRequest, AddAudioRequest, ImagesToVideoRequest,
]
