"""Builders that turn an operation into an ffmpeg ``Invocation``.

Every builder returns an argument list, never a shell string, so file
names and request parameters reach ffmpeg verbatim and cannot be read as
shell syntax.  Builders are pure: they only describe the call.  Concat
lists are attached as ``support_files`` for the executor to write.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from .models import Invocation

# Normalization target shared by every merge input.
NORMALIZE_WIDTH = 1280
NORMALIZE_HEIGHT = 720
NORMALIZE_FPS = 30
NORMALIZE_PRESET = "fast"
NORMALIZE_CRF = 23
AUDIO_BITRATE = "128k"

SLIDESHOW_PIXEL_FORMAT = "yuv420p"
SLIDESHOW_FPS = 30


def _seconds(value: float) -> str:
    """Format seconds for ffmpeg without exponent notation."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text or "0"


def _base(ffmpeg: str) -> list[str]:
    return [ffmpeg, "-hide_banner", "-nostdin", "-y"]


def _quote_concat_path(path: Path) -> str:
    # concat demuxer syntax: single-quoted, embedded quotes closed and escaped.
    return "'" + str(path).replace("'", "'\\''") + "'"


def concat_list(files: Sequence[Path], durations: Sequence[float] | None = None) -> str:
    """Render a concat-demuxer list file.

    With *durations*, each entry gets a ``duration`` directive and the
    last file is repeated so the demuxer honours the final duration.
    """
    lines: list[str] = []
    for idx, path in enumerate(files):
        lines.append(f"file {_quote_concat_path(path)}")
        if durations is not None:
            lines.append(f"duration {_seconds(durations[idx])}")
    if durations is not None and files:
        lines.append(f"file {_quote_concat_path(files[-1])}")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Single-input transforms
# ---------------------------------------------------------------------------

def build_trim(
    src: Path,
    dest: Path,
    start: float,
    duration: float,
    *,
    ffmpeg: str = "ffmpeg",
) -> Invocation:
    """Cut *duration* seconds starting at *start*, re-encoding to H.264/AAC."""
    args = [
        *_base(ffmpeg),
        "-ss", _seconds(start),
        "-i", str(src),
        "-t", _seconds(duration),
        "-c:v", "libx264",
        "-c:a", "aac",
        "-movflags", "+faststart",
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=(src,),
        output=dest,
        description=f"trim {_seconds(start)}s +{_seconds(duration)}s",
    )


def build_resize(
    src: Path,
    dest: Path,
    width: int,
    height: int,
    *,
    ffmpeg: str = "ffmpeg",
) -> Invocation:
    """Scale to exactly *width*×*height*, re-encoding video and audio."""
    args = [
        *_base(ffmpeg),
        "-i", str(src),
        "-vf", f"scale={width}:{height}",
        "-c:v", "libx264",
        "-c:a", "aac",
        "-movflags", "+faststart",
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=(src,),
        output=dest,
        description=f"resize to {width}x{height}",
    )


def build_normalize(src: Path, dest: Path, *, ffmpeg: str = "ffmpeg") -> Invocation:
    """Re-encode to the common geometry, frame rate and codecs used for merging.

    Inputs of different sizes, rates or codecs cannot be stream-copied
    into one file; after this step they can.
    """
    args = [
        *_base(ffmpeg),
        "-i", str(src),
        "-vf", f"scale={NORMALIZE_WIDTH}:{NORMALIZE_HEIGHT},setsar=1",
        "-r", str(NORMALIZE_FPS),
        "-c:v", "libx264",
        "-preset", NORMALIZE_PRESET,
        "-crf", str(NORMALIZE_CRF),
        "-c:a", "aac",
        "-b:a", AUDIO_BITRATE,
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=(src,),
        output=dest,
        description=f"normalize {src.name}",
    )


# ---------------------------------------------------------------------------
# Multi-input operations
# ---------------------------------------------------------------------------

def build_merge(
    sources: Sequence[Path],
    list_path: Path,
    dest: Path,
    *,
    ffmpeg: str = "ffmpeg",
) -> Invocation:
    """Stream-copy concatenation of already-normalized *sources*, in order."""
    args = [
        *_base(ffmpeg),
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-c", "copy",
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=tuple(sources),
        output=dest,
        description=f"concatenate {len(sources)} files",
        support_files=((list_path, concat_list(sources)),),
    )


def build_add_audio(
    video: Path,
    content_audio: Path,
    background_audio: Path,
    dest: Path,
    *,
    content_volume: float = 1.0,
    background_volume: float = 1.0,
    ffmpeg: str = "ffmpeg",
) -> Invocation:
    """Mix two audio sources at independent gains over *video*.

    The visual stream is copied untouched.  ``normalize=0`` keeps amix
    from rescaling the inputs, so a gain of 0 on one track leaves the
    other at its own level.  Output stops at the shortest input.
    """
    mix = (
        f"[1:a]volume={_seconds(content_volume)}[content];"
        f"[2:a]volume={_seconds(background_volume)}[background];"
        "[content][background]amix=inputs=2:duration=shortest:normalize=0[mixed]"
    )
    args = [
        *_base(ffmpeg),
        "-i", str(video),
        "-i", str(content_audio),
        "-i", str(background_audio),
        "-filter_complex", mix,
        "-map", "0:v:0",
        "-map", "[mixed]",
        "-c:v", "copy",
        "-c:a", "aac",
        "-b:a", AUDIO_BITRATE,
        "-shortest",
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=(video, content_audio, background_audio),
        output=dest,
        description=(
            f"mix audio (content={_seconds(content_volume)}, "
            f"background={_seconds(background_volume)})"
        ),
    )


def build_images_to_video(
    images: Sequence[Path],
    per_image_duration: float,
    list_path: Path,
    dest: Path,
    *,
    width: int,
    height: int,
    ffmpeg: str = "ffmpeg",
) -> Invocation:
    """Show each image for *per_image_duration* seconds, in order.

    Frames are letterboxed into *width*×*height* so mixed image sizes
    share one geometry.  The ``fps=1/d`` filter emits one frame per image;
    ``-t`` cuts the extra frame produced by the repeated last list entry.
    """
    d = _seconds(per_image_duration)
    video_filter = (
        f"fps=1/{d},"
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,"
        "setsar=1"
    )
    args = [
        *_base(ffmpeg),
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-vf", video_filter,
        "-t", _seconds(per_image_duration * len(images)),
        "-r", str(SLIDESHOW_FPS),
        "-c:v", "libx264",
        "-pix_fmt", SLIDESHOW_PIXEL_FORMAT,
        "-movflags", "+faststart",
        str(dest),
    ]
    return Invocation(
        args=tuple(args),
        inputs=tuple(images),
        output=dest,
        description=f"slideshow of {len(images)} images at {d}s each",
        support_files=(
            (list_path, concat_list(images, [per_image_duration] * len(images))),
        ),
    )
