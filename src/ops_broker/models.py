from __future__ import annotations

from dataclasses import asdict, dataclass, field

LOCAL_PROCESS_TYPE = "claude_code_cli"
REMOTE_API_TYPE = "agent_sdk"

PROJECT_STATUSES = ("action_required", "waiting")
MESSAGE_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class LocalProcessConnection:
    id: str
    project_id: str
    name: str
    working_dir: str

    @property
    def type(self) -> str:
        return LOCAL_PROCESS_TYPE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "workingDir": self.working_dir,
        }


@dataclass(frozen=True)
class RemoteApiConnection:
    id: str
    project_id: str
    name: str
    system_prompt: str | None = None

    @property
    def type(self) -> str:
        return REMOTE_API_TYPE

    def to_dict(self) -> dict:
        data: dict = {"id": self.id, "type": self.type, "name": self.name}
        if self.system_prompt is not None:
            data["systemPrompt"] = self.system_prompt
        return data


Connection = LocalProcessConnection | RemoteApiConnection


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    status: str
    created_at: str
    connections: list[Connection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "connections": [c.to_dict() for c in self.connections],
        }


@dataclass(frozen=True)
class Session:
    id: str
    connection_id: str
    status: str
    created_at: str
    last_activity: str
    backend_session_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "connectionId": self.connection_id,
            "status": self.status,
            "lastActivity": self.last_activity,
        }


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    timestamp: str

    def to_dict(self) -> dict:
        return asdict(self)

    def to_chat(self) -> dict:
        return {"role": self.role, "content": self.content}
