from __future__ import annotations

from pathlib import Path

from media_ops.commands import (
    build_add_audio,
    build_images_to_video,
    build_merge,
    build_normalize,
    build_resize,
    build_trim,
    concat_list,
)


def _after(args: tuple[str, ...], flag: str) -> str:
    return args[args.index(flag) + 1]


def test_trim_seeks_limits_and_reencodes():
    inv = build_trim(Path("/s/in.input"), Path("/o/out.mp4"), 5, 10.25)
    assert inv.args[0] == "ffmpeg"
    assert _after(inv.args, "-ss") == "5"
    assert _after(inv.args, "-t") == "10.25"
    assert inv.args.index("-ss") < inv.args.index("-i")
    assert _after(inv.args, "-c:v") == "libx264"
    assert _after(inv.args, "-c:a") == "aac"
    assert inv.args[-1] == "/o/out.mp4"
    assert inv.inputs == (Path("/s/in.input"),)


def test_resize_scales_to_requested_geometry():
    inv = build_resize(Path("/s/in"), Path("/o/out.mp4"), 640, 360, ffmpeg="/opt/ffmpeg")
    assert inv.args[0] == "/opt/ffmpeg"
    assert _after(inv.args, "-vf") == "scale=640:360"


def test_normalize_targets_common_format():
    inv = build_normalize(Path("/s/in"), Path("/s/norm.mp4"))
    assert _after(inv.args, "-vf").startswith("scale=1280:720")
    assert _after(inv.args, "-r") == "30"
    assert _after(inv.args, "-preset") == "fast"
    assert _after(inv.args, "-crf") == "23"
    assert _after(inv.args, "-b:a") == "128k"


def test_merge_stream_copies_from_ordered_list():
    sources = [Path("/s/b.mp4"), Path("/s/a.mp4")]
    inv = build_merge(sources, Path("/s/list.txt"), Path("/o/out.mp4"))
    assert _after(inv.args, "-f") == "concat"
    assert _after(inv.args, "-i") == "/s/list.txt"
    assert _after(inv.args, "-c") == "copy"
    [(list_path, text)] = inv.support_files
    assert list_path == Path("/s/list.txt")
    assert text == "file '/s/b.mp4'\nfile '/s/a.mp4'\n"


def test_concat_list_escapes_quotes():
    text = concat_list([Path("/s/it's.mp4")])
    assert text == "file '/s/it'\\''s.mp4'\n"


def test_add_audio_mixes_at_independent_gains():
    inv = build_add_audio(
        Path("/s/v"), Path("/s/c"), Path("/s/b"), Path("/o/out.mp4"),
        content_volume=0, background_volume=0.35,
    )
    graph = _after(inv.args, "-filter_complex")
    assert "[1:a]volume=0[content]" in graph
    assert "[2:a]volume=0.35[background]" in graph
    assert "amix=inputs=2:duration=shortest:normalize=0" in graph
    assert _after(inv.args, "-c:v") == "copy"
    assert "-shortest" in inv.args
    assert inv.inputs == (Path("/s/v"), Path("/s/c"), Path("/s/b"))


def test_images_to_video_holds_each_image_for_duration():
    images = [Path("/s/a.png"), Path("/s/b.jpg"), Path("/s/c.png")]
    inv = build_images_to_video(
        images, 2, Path("/s/list.txt"), Path("/o/out.mp4"), width=640, height=480,
    )
    video_filter = _after(inv.args, "-vf")
    assert video_filter.startswith("fps=1/2,")
    assert "pad=640:480" in video_filter
    assert _after(inv.args, "-pix_fmt") == "yuv420p"
    assert _after(inv.args, "-t") == "6"
    [(_, text)] = inv.support_files
    assert text.splitlines() == [
        "file '/s/a.png'", "duration 2",
        "file '/s/b.jpg'", "duration 2",
        "file '/s/c.png'", "duration 2",
        "file '/s/c.png'",
    ]


def test_hostile_file_names_stay_single_arguments():
    hostile = Path("/s/x; rm -rf ~ && echo $(id).mp4")
    inv = build_trim(hostile, Path("/o/out.mp4"), 0, 1)
    assert str(hostile) in inv.args
