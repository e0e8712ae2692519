from __future__ import annotations


class BrokerError(Exception):
    """Base class for every error the broker raises on purpose."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BrokerError):
    status_code = 404


class InvalidInput(BrokerError):
    status_code = 400


class TurnInProgress(BrokerError):
    status_code = 409


class BackendSpawnFailure(BrokerError):
    """The local backend process could not be started."""


class BackendRuntimeFailure(BrokerError):
    """The backend started but failed: non-zero exit, timeout, network or API error."""


class DecodeFailure(BrokerError):
    """A single line of backend output was not a JSON object."""

    def __init__(self, message: str, line: str):
        super().__init__(message)
        self.line = line
