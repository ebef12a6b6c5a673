from __future__ import annotations

import asyncio
import io
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from PIL import Image

from media_ops import (
    AssetFetcher,
    OperationHandlers,
    PipelineConfig,
    ProcessingError,
    ResultStore,
    ScratchSpace,
)
from media_ops.ffmpeg_utils import CompletedInvocation


def image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, fmt)
    return buf.getvalue()


class FakeExecutor:
    """Stands in for ffmpeg: writes support files and an output made of
    the concatenated input bytes.

    Records every invocation together with the support-file contents as
    they were at run time (they are deleted afterwards).
    """

    def __init__(self, *, fail_on: str | None = None, delay: float = 0.0) -> None:
        self.fail_on = fail_on
        self.delay = delay
        self.calls: list = []
        self.support_texts: list[str] = []
        self.timeouts: list[float | None] = []

    async def run(self, invocation, timeout=None):
        self.calls.append(invocation)
        self.timeouts.append(timeout)
        for path, text in invocation.support_files:
            path.write_text(text)
            self.support_texts.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on and self.fail_on in invocation.description:
            # A real engine leaves a partial file behind on failure.
            invocation.output.write_bytes(b"partial")
            raise ProcessingError(
                f"{invocation.description} failed (exit 1): boom",
                stderr="boom",
                returncode=1,
            )
        # Echo the inputs so tests can follow content through every step.
        invocation.output.write_bytes(
            b"".join(p.read_bytes() for p in invocation.inputs) or b"fake-mp4-data"
        )
        return CompletedInvocation(invocation, 0, "", "")


class FakeRemote:
    """URL → (status, body) table served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes]] = {}
        self.requested: list[str] = []

    def add(self, url: str, body: bytes, status: int = 200) -> str:
        self.routes[url] = (status, body)
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        if url not in self.routes:
            return httpx.Response(404, content=b"not found")
        status, body = self.routes[url]
        return httpx.Response(status, content=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        storage_root=tmp_path / "storage",
        default_timeout=5.0,
        merge_timeout=10.0,
    )


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def scratch(config: PipelineConfig) -> ScratchSpace:
    space = ScratchSpace(config.scratch_dir)
    space.ensure_root()
    return space


@pytest.fixture
def store(config: PipelineConfig) -> ResultStore:
    result_store = ResultStore(config.outputs_dir)
    result_store.load()
    return result_store


@pytest_asyncio.fixture
async def http_client(remote: FakeRemote):
    async with httpx.AsyncClient(transport=remote.transport) as client:
        yield client


@pytest.fixture
def make_handlers(config, scratch, store, http_client):
    def _make(executor) -> OperationHandlers:
        return OperationHandlers(
            config,
            fetcher=AssetFetcher(http_client, timeout=5.0, chunk_size=4),
            executor=executor,
            scratch=scratch,
            store=store,
        )

    return _make


def files_in(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file())
