"""Running ffmpeg invocations as child processes.

``PipelineExecutor.run`` is the only place a process is spawned.  It
never goes through a shell, always applies a timeout, captures stdout
and stderr, and maps a non-zero exit or an expired timeout to
``ProcessingError``.  Each child gets its own session so the whole
process group can be killed on timeout.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
from dataclasses import dataclass

from .errors import ProcessingError
from .models import Invocation

logger = logging.getLogger(__name__)

# How much of stderr to keep on a ProcessingError message.
STDERR_TAIL_CHARS = 2000


# ---------------------------------------------------------------------------
# Dependency check
# ---------------------------------------------------------------------------

def check_dependencies(ffmpeg: str = "ffmpeg") -> None:
    """Verify that the engine binary can be started.

    Call once at startup so a missing binary is reported clearly instead
    of failing the first request.
    """
    try:
        subprocess.run([ffmpeg, "-version"], capture_output=True, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise RuntimeError(
            f"{ffmpeg} not found. Ensure it is installed and on the PATH "
            f"or set MEDIA_OPS_FFMPEG_BIN."
        ) from exc


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompletedInvocation:
    invocation: Invocation
    returncode: int
    stdout: str
    stderr: str


def _tail(text: str) -> str:
    return text[-STDERR_TAIL_CHARS:]


class PipelineExecutor:
    """Runs invocations with an explicit, per-call timeout."""

    def __init__(self, default_timeout: float = 60.0) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        invocation: Invocation,
        timeout: float | None = None,
    ) -> CompletedInvocation:
        """Run *invocation* and wait for it to exit.

        Raises ``ProcessingError`` on a non-zero exit, an expired timeout,
        a missing executable, or when the declared output was not written.
        """
        limit = self.default_timeout if timeout is None else timeout
        for path, text in invocation.support_files:
            path.write_text(text, encoding="utf-8")

        args = list(invocation.args)
        logger.info("Running: %s  [%s]", " ".join(args), invocation.description)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise ProcessingError(f"Could not start {args[0]}: {exc}") from exc

        out_chunks: list[bytes] = []
        err_chunks: list[bytes] = []
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _drain(proc.stdout, out_chunks),
                    _drain(proc.stderr, err_chunks),
                    proc.wait(),
                ),
                timeout=limit,
            )
        except asyncio.TimeoutError:
            await _kill_group(proc)
            stderr = _decode(err_chunks)
            logger.error(
                "Command timed out after %.0fs: %s\nstderr: %s",
                limit, " ".join(args), stderr,
            )
            message = f"{invocation.description or args[0]} timed out after {limit:g}s"
            if stderr.strip():
                message += f": {_tail(stderr).strip()}"
            raise ProcessingError(message, stderr=stderr, timed_out=True) from None
        except asyncio.CancelledError:
            await _kill_group(proc)
            raise

        stdout = _decode(out_chunks)
        stderr = _decode(err_chunks)
        if proc.returncode != 0:
            logger.error(
                "Command failed (rc=%d): %s\nstderr: %s",
                proc.returncode,
                " ".join(args),
                stderr,
            )
            raise ProcessingError(
                f"{invocation.description or args[0]} failed "
                f"(exit {proc.returncode}): {_tail(stderr).strip()}",
                stderr=stderr,
                returncode=proc.returncode,
            )

        if not invocation.output.exists():
            raise ProcessingError(
                f"{invocation.description or args[0]} exited cleanly "
                f"but wrote no output",
                stderr=stderr,
                returncode=proc.returncode,
            )

        return CompletedInvocation(
            invocation=invocation,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )


async def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill the child and everything it spawned, then reap it."""
    if proc.returncode is None:
        try:
            if os.name == "nt":
                proc.kill()
            else:
                os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    await proc.wait()


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    # Chunks land in *chunks* as they arrive, so output survives a timeout.
    while True:
        chunk = await stream.read(64 * 1024)
        if not chunk:
            return
        chunks.append(chunk)


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")
