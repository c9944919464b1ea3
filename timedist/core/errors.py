"""Common exceptions for timedist.

Recording calls never raise these; only engines (during allocation) and the
test accessors do.
"""
from __future__ import annotations


class TimedistError(Exception):
    pass


class NoValueError(TimedistError):
    """Raised by test accessors when no value is stored for the ping."""

    def __init__(self, identifier: str, ping_name: str) -> None:
        super().__init__(f"Missing value for {identifier} in ping {ping_name!r}")
        self.identifier = identifier
        self.ping_name = ping_name


class EngineUnavailableError(TimedistError):
    pass
