from ops_broker.memory.catalog import ProjectCatalog
from ops_broker.memory.events import EventEmitter
from ops_broker.memory.sessions import SessionRegistry
from ops_broker.memory.store import BrokerStore
from ops_broker.memory.transcript import TranscriptStore

__all__ = [
    "BrokerStore",
    "EventEmitter",
    "ProjectCatalog",
    "SessionRegistry",
    "TranscriptStore",
]
