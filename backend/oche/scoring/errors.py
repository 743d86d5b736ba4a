from __future__ import annotations


class ScoringError(Exception):
    """
    Base class for every error the scoring core raises.

    The message is safe to show to a client.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidThrowError(ScoringError, ValueError):
    pass


class InvalidSettingsError(ScoringError, ValueError):
    pass


class NotYourTurnError(ScoringError, PermissionError):
    pass


class MatchFinishedError(ScoringError, RuntimeError):
    pass


class MatchNotFinishedError(ScoringError, RuntimeError):
    pass


class NotFoundError(ScoringError, LookupError):
    pass


class BusyError(ScoringError):
    """
    The match lock could not be acquired in time. Safe to retry.
    """
