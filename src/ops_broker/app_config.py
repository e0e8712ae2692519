from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    claude_command: list[str]
    process_timeout_ms: int
    db_path: str
    default_working_dir: str | None
    cancel_on_disconnect: bool
    host: str
    port: int
    log_level: str
    log_consumers: list | None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_command(value: object) -> list[str]:
    if isinstance(value, list):
        return [str(part) for part in value]
    command = shlex.split(str(value or ""))
    return command or ["claude"]


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=str(config.get("Provider") or "anthropic").strip().lower(),
        model=config.get("Model", "claude-sonnet-4-20250514"),
        max_tokens=int(config.get("MaxTokens", 8192)),
        claude_command=_to_command(config.get("ClaudeCommand", "claude")),
        process_timeout_ms=int(config.get("ProcessTimeoutMs", 300_000)),
        db_path=os.path.expanduser(str(config.get("DbPath") or "~/.ops/ops.db")),
        default_working_dir=str(config.get("DefaultWorkingDir") or "").strip() or None,
        cancel_on_disconnect=_to_bool(config.get("CancelOnDisconnect", True), default=True),
        host=str(config.get("Host", "127.0.0.1")),
        port=int(config.get("Port", 3000)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "anthropic":
        provider_env_var = "ANTHROPIC_API_KEY"
    else:
        raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic'")

    return RuntimeEnv(
        provider_api_key=os.environ.get(provider_env_var, ""),
        provider_env_var=provider_env_var,
    )
