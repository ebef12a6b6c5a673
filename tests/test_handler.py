from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from PIL import Image

from media_ops.errors import FetchError, InvalidRequestError, ProcessingError
from media_ops.models import (
    AddAudioRequest,
    ImagesToVideoRequest,
    MergeRequest,
    ResizeRequest,
    TrimRequest,
)

from conftest import FakeExecutor, files_in, image_bytes


def _assert_no_scratch_left(config):
    assert files_in(config.scratch_dir) == []


@pytest.mark.asyncio
async def test_trim_registers_output_and_cleans_scratch(
    config, remote, executor, store, make_handlers,
):
    url = remote.add("https://cdn.example.com/a.mp4", b"video-a")
    artifact = await make_handlers(executor).handle(
        TrimRequest(input_url=url, start=2, duration=3)
    )

    assert artifact.path.parent == store.root
    assert artifact.path.read_bytes() == b"video-a"
    assert store.get(artifact.artifact_id).path == artifact.path
    [inv] = executor.calls
    # Rendered in scratch, then moved into the outputs directory.
    assert inv.output.parent == config.scratch_dir.resolve()
    assert inv.output.name == artifact.artifact_id
    assert executor.timeouts == [config.default_timeout]
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_resize_uses_requested_geometry(config, remote, executor, make_handlers):
    url = remote.add("https://cdn.example.com/a.mp4", b"video-a")
    await make_handlers(executor).handle(ResizeRequest(input_url=url, width=320, height=240))
    [inv] = executor.calls
    assert "scale=320:240" in inv.args
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_merge_normalizes_each_input_then_concatenates(
    config, remote, executor, make_handlers,
):
    urls = [remote.add(f"https://cdn.example.com/{n}.mp4", n.encode()) for n in "abc"]
    artifact = await make_handlers(executor).handle(MergeRequest(video_urls=tuple(urls)))

    normalize_calls = [c for c in executor.calls if c.description.startswith("normalize")]
    merge_calls = [c for c in executor.calls if c.description.startswith("concatenate")]
    assert len(normalize_calls) == 3
    assert len(merge_calls) == 1
    assert executor.calls[-1] is merge_calls[0]
    assert set(executor.timeouts) == {config.merge_timeout}

    # Concat list follows request order over the normalized copies.
    listed = [line.split("'")[1] for line in executor.support_texts[0].splitlines()]
    assert listed == [str(p) for p in merge_calls[0].inputs]
    assert artifact.path.read_bytes() == b"abc"
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_add_audio_passes_volumes(config, remote, executor, make_handlers):
    request = AddAudioRequest(
        video_url=remote.add("https://cdn.example.com/v.mp4", b"v"),
        content_audio_url=remote.add("https://cdn.example.com/c.mp3", b"c"),
        background_audio_url=remote.add("https://cdn.example.com/b.mp3", b"b"),
        content_volume=0.0,
        background_volume=1.0,
    )
    await make_handlers(executor).handle(request)
    [inv] = executor.calls
    graph = inv.args[inv.args.index("-filter_complex") + 1]
    assert "[1:a]volume=0[content]" in graph
    assert "[2:a]volume=1[background]" in graph
    assert not any(p.exists() for p in inv.inputs)
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_images_to_video_uses_first_image_geometry(
    config, remote, executor, make_handlers,
):
    urls = (
        remote.add("https://img.example/a.png", image_bytes(641, 481)),
        remote.add("https://img.example/b.png", image_bytes(100, 100)),
        remote.add("https://img.example/c.png", image_bytes(30, 60)),
    )
    await make_handlers(executor).handle(ImagesToVideoRequest(image_urls=urls, duration=2))

    [inv] = executor.calls
    assert [p.suffix for p in inv.inputs] == [".png"] * 3
    video_filter = inv.args[inv.args.index("-vf") + 1]
    assert "scale=640:480" in video_filter
    assert executor.support_texts[0].count("duration 2") == 3
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_undecodable_image_is_rejected_before_processing(
    config, remote, executor, make_handlers,
):
    urls = (
        remote.add("https://img.example/a.png", image_bytes()),
        remote.add("https://img.example/b.jpg", b"<html>login required</html>"),
    )
    with pytest.raises(InvalidRequestError, match="b.jpg"):
        await make_handlers(executor).handle(ImagesToVideoRequest(image_urls=urls, duration=1))
    assert executor.calls == []
    _assert_no_scratch_left(config)
    assert files_in(config.outputs_dir) == []


@pytest.mark.asyncio
async def test_fetch_failure_leaves_nothing_behind(config, remote, executor, make_handlers):
    good = remote.add("https://cdn.example.com/a.mp4", b"a")
    missing = "https://cdn.example.com/missing.mp4"
    with pytest.raises(FetchError):
        await make_handlers(executor).handle(MergeRequest(video_urls=(good, missing)))
    assert executor.calls == []
    _assert_no_scratch_left(config)
    assert files_in(config.outputs_dir) == []


@pytest.mark.asyncio
async def test_processing_failure_discards_partial_output(
    config, remote, store, make_handlers,
):
    failing = FakeExecutor(fail_on="concatenate")
    urls = tuple(remote.add(f"https://cdn.example.com/{n}.mp4", n.encode()) for n in "ab")
    with pytest.raises(ProcessingError):
        await make_handlers(failing).handle(MergeRequest(video_urls=urls))
    _assert_no_scratch_left(config)
    assert files_in(config.outputs_dir) == []


@pytest.mark.asyncio
async def test_cancellation_still_cleans_up(config, remote, make_handlers):
    slow = FakeExecutor(delay=5)
    url = remote.add("https://cdn.example.com/a.mp4", b"a")
    task = asyncio.create_task(
        make_handlers(slow).handle(TrimRequest(input_url=url, start=0, duration=1))
    )
    while not slow.calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    _assert_no_scratch_left(config)
    assert files_in(config.outputs_dir) == []


@pytest.mark.asyncio
async def test_concurrent_merges_do_not_share_scratch(config, remote, make_handlers):
    shared = FakeExecutor(delay=0.05)
    handlers = make_handlers(shared)
    first = tuple(remote.add(f"https://one.example/{i}.mp4", b"1") for i in range(3))
    second = tuple(remote.add(f"https://two.example/{i}.mp4", b"2") for i in range(3))

    a, b = await asyncio.gather(
        handlers.handle(MergeRequest(video_urls=first)),
        handlers.handle(MergeRequest(video_urls=second)),
    )

    assert a.artifact_id != b.artifact_id
    merges = [c for c in shared.calls if c.description.startswith("concatenate")]
    assert len(merges) == 2
    assert not set(merges[0].inputs) & set(merges[1].inputs)
    assert a.path.read_bytes() == b"111"
    assert b.path.read_bytes() == b"222"
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_mixed_image_formats_become_one_codec(config, remote, executor, make_handlers):
    urls = (
        remote.add("https://img.example/a.png", image_bytes(64, 48)),
        remote.add("https://img.example/b.jpg", image_bytes(64, 48, "JPEG")),
        remote.add("https://img.example/c.JPEG", image_bytes(32, 32, "JPEG")),
    )
    await make_handlers(executor).handle(ImagesToVideoRequest(image_urls=urls, duration=1))

    [inv] = executor.calls
    listed = [
        line.split("'")[1] for line in executor.support_texts[0].splitlines()
        if line.startswith("file ")
    ]
    assert {Path(p).suffix for p in listed} == {".png"}
    assert [Path(p) for p in listed[:3]] == list(inv.inputs)
    _assert_no_scratch_left(config)


@pytest.mark.asyncio
async def test_oversized_image_is_a_client_error(
    config, remote, executor, make_handlers, monkeypatch,
):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    url = remote.add("https://img.example/huge.png", image_bytes(64, 48))
    with pytest.raises(InvalidRequestError, match="huge.png"):
        await make_handlers(executor).handle(ImagesToVideoRequest(image_urls=(url,), duration=1))
    assert executor.calls == []
    _assert_no_scratch_left(config)
