"""
Exception hierarchy shared by the schedule engine and its adapters.

Adapters translate library failures (py-cord HTTP errors, aiosqlite errors,
connection timeouts) into these classes so the engine can decide between
"tell the user", "recreate and move on" and "retry next cycle" without
knowing which library raised.

There is no rate-limit error: an admission denial is an
:class:`~schedcord.ratelimit.admission_controller.AdmissionResult`, not an error.
"""

from __future__ import annotations

from typing import Iterable


class ScheduleError(Exception):
    """Base class for every error raised by Schedcord."""


class ValidationError(ScheduleError):
    """Input that names an unknown category or source, or is otherwise malformed."""


class SessionExpiredError(ValidationError):
    """A setup step arrived without the session context it depends on."""


class MissingCapabilityError(ScheduleError):
    """The bot lacks a permission it needs in the target channel or guild."""

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.missing = tuple(missing)


class NotFoundError(ScheduleError):
    """A channel or message this core refers to no longer exists."""


class TransientInfraError(ScheduleError):
    """Store or transport timeout, connection failure or server error."""
