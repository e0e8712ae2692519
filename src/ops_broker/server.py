"""FastAPI web server for the session broker."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from ops_broker.bootstrap import AppRuntime
from ops_broker.errors import BrokerError, InvalidInput, NotFound
from ops_broker.wire import SSE_HEADERS, format_sse


def create_app(runtime: AppRuntime) -> FastAPI:
    """Create the FastAPI application bound to one runtime (store + orchestrator)."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await runtime.orchestrator.wait_for_background_turns()

    app = FastAPI(title="ops-broker", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.exception_handler(BrokerError)
    async def handle_broker_error(_request: Request, ex: BrokerError) -> JSONResponse:
        logger.warning(f"{type(ex).__name__}: {ex.message}")
        return JSONResponse({"error": ex.message}, status_code=ex.status_code)

    _register_session_routes(app, runtime)
    _register_project_routes(app, runtime)
    return app


async def _read_json(request: Request) -> dict[str, Any]:
    """Return the request body as a dict; a missing or malformed body reads as {}."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def _sse(events: AsyncIterator[dict]) -> AsyncIterator[str]:
    async for event in events:
        yield format_sse(event)


# ── Sessions ─────────────────────────────────────────────────────


def _register_session_routes(app: FastAPI, runtime: AppRuntime) -> None:
    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/sessions")
    async def list_sessions():
        return {"sessions": [s.to_dict() for s in runtime.sessions.list_sessions()]}

    @app.post("/api/sessions")
    async def create_session(request: Request):
        body = await _read_json(request)
        connection_id = body.get("connectionId")
        connection = runtime.catalog.find_connection(connection_id) if isinstance(connection_id, str) else None
        if connection is None:
            raise NotFound("Connection not found")
        session = runtime.sessions.create_session(connection.id)
        logger.info(f"Created session {session.id} on {connection.type} connection {connection.id}")
        return {"sessionId": session.id}

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        session = runtime.sessions.find_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        messages = runtime.transcripts.list_messages(session_id)
        return {"session": session.to_dict(), "messages": [m.to_dict() for m in messages]}

    @app.get("/api/sessions/{session_id}/events")
    async def get_session_events(session_id: str):
        if runtime.sessions.find_session(session_id) is None:
            raise NotFound("Session not found")
        return {"events": runtime.events.list_events(session_id)}

    @app.post("/api/sessions/{session_id}")
    async def submit_turn(session_id: str, request: Request):
        """Run one turn and stream it back as server-sent events."""
        body = await _read_json(request)
        turn = runtime.orchestrator.begin_turn(session_id, body.get("prompt"))
        logger.info(f"Turn accepted for session {session_id} ({turn.connection.type})")
        # Releases the session if the client leaves before the stream starts.
        cleanup = BackgroundTasks()
        cleanup.add_task(turn.close)
        return StreamingResponse(
            _sse(turn.events()),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
            background=cleanup,
        )

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str):
        if not runtime.sessions.delete_session(session_id):
            raise NotFound("Session not found")
        logger.info(f"Deleted session {session_id}")
        return {"success": True}


# ── Projects and connections ─────────────────────────────────────


def _register_project_routes(app: FastAPI, runtime: AppRuntime) -> None:
    catalog = runtime.catalog

    @app.get("/api/projects")
    async def list_projects():
        return {"projects": [p.to_dict() for p in catalog.list_projects()]}

    @app.post("/api/projects", status_code=201)
    async def create_project(request: Request):
        body = await _read_json(request)
        project = catalog.create_project(body.get("name") or "", body.get("status"))
        return {"project": project.to_dict()}

    @app.get("/api/projects/{project_id}")
    async def get_project(project_id: str):
        project = catalog.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return {"project": project.to_dict()}

    @app.put("/api/projects/{project_id}")
    async def update_project(project_id: str, request: Request):
        body = await _read_json(request)
        project = catalog.update_project(project_id, name=body.get("name"), status=body.get("status"))
        if project is None:
            raise NotFound("Project not found")
        return {"project": project.to_dict()}

    @app.delete("/api/projects/{project_id}")
    async def delete_project(project_id: str):
        if not catalog.delete_project(project_id):
            raise NotFound("Project not found")
        return {"success": True}

    @app.post("/api/projects/{project_id}/connections", status_code=201)
    async def create_connection(project_id: str, request: Request):
        body = await _read_json(request)
        connection_type = body.get("type")
        name = body.get("name")
        if not connection_type or not name:
            raise InvalidInput("Type and name are required")
        connection = catalog.create_connection(
            project_id,
            connection_type,
            name,
            working_dir=body.get("workingDir"),
            system_prompt=body.get("systemPrompt"),
        )
        if connection is None:
            raise NotFound("Project not found")
        return {"connection": connection.to_dict()}

    @app.put("/api/projects/{project_id}/connections/{connection_id}")
    async def update_connection(project_id: str, connection_id: str, request: Request):
        body = await _read_json(request)
        connection = catalog.update_connection(
            connection_id,
            name=body.get("name"),
            working_dir=body.get("workingDir"),
            system_prompt=body.get("systemPrompt"),
        )
        if connection is None:
            raise NotFound("Connection not found")
        return {"connection": connection.to_dict()}

    @app.delete("/api/projects/{project_id}/connections/{connection_id}")
    async def delete_connection(project_id: str, connection_id: str):
        if not catalog.delete_connection(connection_id):
            raise NotFound("Connection not found")
        return {"success": True}
