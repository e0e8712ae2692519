from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Coroutine
from contextlib import aclosing
from typing import Any

from loguru import logger

from ops_broker.errors import BrokerError, InvalidInput, NotFound, TurnInProgress
from ops_broker.memory import EventEmitter, ProjectCatalog, SessionRegistry, TranscriptStore
from ops_broker.models import Connection, LocalProcessConnection, RemoteApiConnection, Session
from ops_broker.process_runner import ProcessRunner
from ops_broker.provider import RemoteStream
from ops_broker.wire import done_event, error_event, extract_text_delta, is_terminal, text_delta_event

_STDERR_TAIL_CHARS = 2000


class TurnOrchestrator:
    """Drives one prompt through the backend bound to a session.

    begin_turn() does all validation up front and claims the session, so the
    HTTP layer can answer 404/400/409 before any stream is opened. The returned
    Turn holds the claim until its events finish or close() is called, and does
    the transcript writes while its events are consumed.
    """

    def __init__(
        self,
        *,
        sessions: SessionRegistry,
        transcripts: TranscriptStore,
        catalog: ProjectCatalog,
        runner: ProcessRunner,
        remote: RemoteStream,
        events: EventEmitter,
        cancel_on_disconnect: bool = True,
    ):
        self._sessions = sessions
        self._transcripts = transcripts
        self._catalog = catalog
        self._runner = runner
        self._remote = remote
        self._events = events
        self._cancel_on_disconnect = cancel_on_disconnect
        self._busy: set[str] = set()
        self._background: set[asyncio.Task] = set()

    @property
    def cancel_on_disconnect(self) -> bool:
        return self._cancel_on_disconnect

    def begin_turn(self, session_id: str, prompt: Any) -> Turn:
        session = self._sessions.find_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        if not isinstance(prompt, str) or not prompt:
            raise InvalidInput("Prompt is required")
        connection = self._catalog.find_connection(session.connection_id)
        if connection is None:
            raise NotFound("Connection not found")
        if not self._claim(session_id):
            raise TurnInProgress("A turn is already in progress for this session")
        return Turn(self, session, connection, prompt)

    def submit(self, session_id: str, prompt: Any) -> AsyncIterator[dict]:
        return self.begin_turn(session_id, prompt).events()

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._busy

    async def wait_for_background_turns(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _claim(self, session_id: str) -> bool:
        if session_id in self._busy:
            return False
        self._busy.add(session_id)
        return True

    def _release(self, session_id: str) -> None:
        self._busy.discard(session_id)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task


class Turn:
    """One user prompt and its response: started -> streaming -> completed | failed.

    A Turn owns the session's busy claim from begin_turn() on. Running its events
    releases the claim when they end; close() releases it for a turn whose events
    are never consumed.
    """

    def __init__(self, orchestrator: TurnOrchestrator, session: Session, connection: Connection, prompt: str):
        self._orchestrator = orchestrator
        self.session = session
        self.connection = connection
        self.prompt = prompt
        self.state = "started"
        self._fragments: list[str] = []
        self._backend_failure: str | None = None
        self._stderr_tail = ""
        self._claimed = True
        self._consumed = False

    @property
    def assistant_text(self) -> str:
        return "".join(self._fragments)

    async def close(self) -> None:
        if not self._consumed:
            logger.info(f"Turn for session {self.session.id} closed before it was run")
            self._release_claim()

    async def events(self) -> AsyncIterator[dict]:
        self._consumed = True
        if self._orchestrator.cancel_on_disconnect:
            async with aclosing(self._run()) as events:
                async for event in events:
                    yield event
            return

        # Detached: the turn keeps running and commits even if the reader goes away.
        queue: asyncio.Queue[dict | None] = asyncio.Queue()
        self._orchestrator._spawn(self._run_into(queue))
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event

    async def _run_into(self, queue: asyncio.Queue[dict | None]) -> None:
        try:
            async with aclosing(self._run()) as events:
                async for event in events:
                    queue.put_nowait(event)
        finally:
            self._release_claim()
            queue.put_nowait(None)

    def _release_claim(self) -> None:
        if self._claimed:
            self._claimed = False
            self._orchestrator._release(self.session.id)

    async def _run(self) -> AsyncIterator[dict]:
        sid = self.session.id
        orch = self._orchestrator
        if not self._claimed:
            yield error_event("Turn is no longer active")
            return

        finished = False
        try:
            failure: str | None = None
            try:
                orch._transcripts.append_message(sid, "user", self.prompt)
                self._audit("turn.started", {"connection_type": self.connection.type})
                self.state = "streaming"
                async with aclosing(self._dispatch()) as stream:
                    async for event in stream:
                        yield event
            except BrokerError as ex:
                logger.warning(f"Turn failed for session {sid}: {type(ex).__name__}: {ex.message}")
                failure = ex.message
            except Exception as ex:
                logger.exception(f"Unexpected error during turn for session {sid}")
                failure = str(ex) or type(ex).__name__

            terminal = self._finish(failure or self._backend_failure)
            finished = True
            yield terminal
        finally:
            if not finished and self.state == "streaming":
                logger.warning(f"Turn for session {sid} was closed before completion")
                self._finish("Turn cancelled before completion")
            self._release_claim()

    def _dispatch(self) -> AsyncIterator[dict]:
        match self.connection:
            case LocalProcessConnection():
                return self._stream_local(self.connection)
            case RemoteApiConnection():
                return self._stream_remote(self.connection)
        raise InvalidInput("Unsupported connection type")

    async def _stream_local(self, connection: LocalProcessConnection) -> AsyncIterator[dict]:
        runner = self._orchestrator._runner
        items = runner.run(
            self.prompt,
            connection.working_dir,
            session_id=self.session.backend_session_id,
        )
        async with aclosing(items) as items:
            async for kind, payload in items:
                if kind == "event":
                    self._observe_local_event(payload)
                    if is_terminal(payload):
                        logger.debug(f"Not forwarding backend {payload.get('type')!r} event")
                        continue
                    yield payload
                elif kind == "error":
                    logger.warning(f"Backend stderr: {payload.rstrip()[:500]}")
                    self._stderr_tail = (self._stderr_tail + payload)[-_STDERR_TAIL_CHARS:]
                elif kind == "exit" and payload != 0:
                    detail = self._stderr_tail.strip() or f"Process exited with code {payload}"
                    self._backend_failure = self._backend_failure or detail

    def _observe_local_event(self, event: dict) -> None:
        text = extract_text_delta(event)
        if text:
            self._fragments.append(text)
            return

        event_type = event.get("type")
        if event_type == "system" and event.get("subtype") == "init":
            backend_session_id = event.get("session_id")
            if isinstance(backend_session_id, str) and backend_session_id != self.session.backend_session_id:
                self._orchestrator._sessions.set_backend_session_id(self.session.id, backend_session_id)
        elif event_type == "result" and event.get("is_error"):
            self._backend_failure = str(event.get("result") or "Backend reported an error")
        elif event_type == "error":
            self._backend_failure = str(event.get("error") or "Backend reported an error")

    async def _stream_remote(self, connection: RemoteApiConnection) -> AsyncIterator[dict]:
        history = [m.to_chat() for m in self._orchestrator._transcripts.list_messages(self.session.id)]
        logger.info(f"Streaming remote reply for session {self.session.id} (history={len(history)})")
        fragments = self._orchestrator._remote.stream_text(history, connection.system_prompt)
        async with aclosing(fragments) as fragments:
            async for text in fragments:
                if not text:
                    continue
                self._fragments.append(text)
                yield text_delta_event(text)

    def _finish(self, failure: str | None) -> dict:
        sid = self.session.id
        orch = self._orchestrator
        text = self.assistant_text
        try:
            if text:
                orch._transcripts.append_message(sid, "assistant", text)
            orch._sessions.touch_session(sid)
        except Exception as ex:
            logger.exception(f"Failed to commit turn for session {sid}")
            failure = failure or f"Failed to save assistant message: {ex}"

        summary = {"fragments": len(self._fragments), "content_length": len(text)}
        if failure is None:
            self.state = "completed"
            self._audit("turn.completed", summary)
            logger.info(f"Turn completed for session {sid}: {summary}")
            return done_event()

        self.state = "failed"
        self._audit("turn.failed", {**summary, "error": failure})
        logger.info(f"Turn failed for session {sid}: {failure}")
        return error_event(failure)

    def _audit(self, event_type: str, payload: dict) -> None:
        try:
            self._orchestrator._events.emit(self.session.id, event_type, payload)
        except Exception:
            logger.exception(f"Failed to record {event_type} for session {self.session.id}")
