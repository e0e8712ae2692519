from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ops_broker.app_config import AppConfig, RuntimeEnv
from ops_broker.logging_config import setup_logging
from ops_broker.memory import BrokerStore, EventEmitter, ProjectCatalog, SessionRegistry, TranscriptStore
from ops_broker.process_runner import ProcessRunner
from ops_broker.provider import RemoteStream, create_remote_stream
from ops_broker.turn_orchestrator import TurnOrchestrator


@dataclass
class AppRuntime:
    store: BrokerStore
    events: EventEmitter
    sessions: SessionRegistry
    transcripts: TranscriptStore
    catalog: ProjectCatalog
    orchestrator: TurnOrchestrator
    log_descriptions: list[str]

    def close(self) -> None:
        self.store.close()


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    runner: ProcessRunner | None = None,
    remote: RemoteStream | None = None,
    configure_logging: bool = True,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    if remote is None:
        if not env.provider_api_key:
            logger.warning(f"{env.provider_env_var} is not set; remote API connections will fail")
        remote = create_remote_stream(
            app.provider_name,
            env.provider_api_key,
            model=app.model,
            max_tokens=app.max_tokens,
        )
    if runner is None:
        runner = ProcessRunner(app.claude_command, timeout_ms=app.process_timeout_ms)

    store = BrokerStore(app.db_path)
    events = EventEmitter(store)
    sessions = SessionRegistry(store, events)
    transcripts = TranscriptStore(store)
    catalog = ProjectCatalog(store, fallback_working_dir=app.default_working_dir)
    logger.info(f"Using database {app.db_path}")

    orchestrator = TurnOrchestrator(
        sessions=sessions,
        transcripts=transcripts,
        catalog=catalog,
        runner=runner,
        remote=remote,
        events=events,
        cancel_on_disconnect=app.cancel_on_disconnect,
    )

    return AppRuntime(
        store=store,
        events=events,
        sessions=sessions,
        transcripts=transcripts,
        catalog=catalog,
        orchestrator=orchestrator,
        log_descriptions=log_descriptions,
    )
