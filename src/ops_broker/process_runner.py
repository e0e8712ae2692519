from __future__ import annotations

import asyncio
import codecs
import subprocess
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from loguru import logger

from ops_broker.errors import BackendRuntimeFailure, BackendSpawnFailure, DecodeFailure, InvalidInput
from ops_broker.stream_parser import decode_stream_line

DEFAULT_TIMEOUT_MS = 300_000
_READ_CHUNK_BYTES = 64 * 1024

# ("event", dict) parsed stdout line
# ("error", str)  stderr text, not terminal
# ("exit", int)   process exit code, always the last item
RunnerItem = tuple[str, object]


class ProcessRunner:
    """Runs one prompt through the local CLI backend and streams its output.

    Each call to run() spawns exactly one process. stdout and stderr are pumped
    by reader tasks into a queue that run() drains, so the caller sees events
    as the process produces them.
    """

    def __init__(self, command: Sequence[str] = ("claude",), *, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        if not command:
            raise ValueError("command must not be empty")
        self._command = list(command)
        self._timeout_ms = timeout_ms

    def build_command(self, prompt: str, session_id: str | None = None) -> list[str]:
        cmd = [
            *self._command,
            "-p", prompt,
            "--output-format", "stream-json",
            "--verbose",
            "--include-partial-messages",
        ]
        if session_id:
            cmd.extend(["-r", session_id])
        return cmd

    async def run(
        self,
        prompt: str,
        working_dir: str,
        *,
        session_id: str | None = None,
        timeout_ms: int | None = None,
    ) -> AsyncIterator[RunnerItem]:
        if not prompt:
            raise InvalidInput("Prompt is required")
        if not working_dir or not Path(working_dir).is_dir():
            raise BackendSpawnFailure(f"Working directory does not exist: {working_dir}")

        timeout_ms = self._timeout_ms if timeout_ms is None else timeout_ms
        cmd = self.build_command(prompt, session_id)
        logger.info(f"Spawning {cmd[0]} in {working_dir} (resume={session_id or '-'}, timeout={timeout_ms}ms)")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=working_dir,
            )
        except OSError as ex:
            raise BackendSpawnFailure(f"Failed to start {cmd[0]}: {ex}") from ex

        queue: asyncio.Queue[RunnerItem] = asyncio.Queue()
        readers = [
            asyncio.create_task(self._pump_stdout(proc.stdout, queue)),
            asyncio.create_task(self._pump_stderr(proc.stderr, queue)),
        ]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000

        try:
            open_streams = len(readers)
            while open_streams:
                try:
                    kind, payload = await asyncio.wait_for(queue.get(), timeout=max(0.0, deadline - loop.time()))
                except asyncio.TimeoutError:
                    raise BackendRuntimeFailure(f"Process timed out after {timeout_ms} ms") from None
                if kind == "eof":
                    open_streams -= 1
                    continue
                if kind == "crash":
                    raise BackendRuntimeFailure(f"Failed to read process output: {payload}")
                yield kind, payload

            try:
                returncode = await asyncio.wait_for(proc.wait(), timeout=max(0.0, deadline - loop.time()))
            except asyncio.TimeoutError:
                raise BackendRuntimeFailure(f"Process timed out after {timeout_ms} ms") from None

            logger.info(f"{cmd[0]} exited with code {returncode}")
            yield "exit", returncode
        finally:
            for reader in readers:
                reader.cancel()
            if proc.returncode is None:
                logger.warning(f"Killing {cmd[0]} (pid {proc.pid})")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

    async def _pump_stdout(self, stream: asyncio.StreamReader, queue: asyncio.Queue[RunnerItem]) -> None:
        # Pieces of the current line; only new chunks are scanned for newlines.
        pending: list[bytes] = []
        try:
            while True:
                chunk = await stream.read(_READ_CHUNK_BYTES)
                if not chunk:
                    break
                head, *rest = chunk.split(b"\n")
                pending.append(head)
                if not rest:
                    continue
                self._enqueue_line(b"".join(pending), queue)
                *lines, tail = rest
                for raw in lines:
                    self._enqueue_line(raw, queue)
                pending = [tail] if tail else []
            # Flush an unterminated last line rather than dropping it.
            if pending:
                self._enqueue_line(b"".join(pending), queue)
        except Exception as ex:
            queue.put_nowait(("crash", ex))
        finally:
            queue.put_nowait(("eof", None))

    async def _pump_stderr(self, stream: asyncio.StreamReader, queue: asyncio.Queue[RunnerItem]) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stream.read(_READ_CHUNK_BYTES)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text.strip():
                    queue.put_nowait(("error", text))
            tail = decoder.decode(b"", final=True)
            if tail.strip():
                queue.put_nowait(("error", tail))
        except Exception as ex:
            queue.put_nowait(("crash", ex))
        finally:
            queue.put_nowait(("eof", None))

    def _enqueue_line(self, raw: bytes, queue: asyncio.Queue[RunnerItem]) -> None:
        line = raw.decode("utf-8", errors="replace")
        try:
            event = decode_stream_line(line)
        except DecodeFailure as ex:
            logger.warning(f"Skipping undecodable output line ({ex.message}): {ex.line[:200]!r}")
            return
        if event is not None:
            queue.put_nowait(("event", event))
