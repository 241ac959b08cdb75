"""
Scoped privilege elevation for host data access.

The host application guards some of its tables behind an "admin mode"
(organization/client visibility filters are lifted while it is on). Reads
and writes done by the exporter have to run elevated, and the previous mode
must come back on every exit path, including exceptions.

Instead of toggling ambient thread-local state, a HostContext instance is
passed to the components that need it and elevation is acquired as a
context manager:

    with context.session(engine) as s:
        ...  # elevated; s.info["admin_mode"] is True
    # previous mode restored, session closed

Sessions opened through session() carry the mode in ``Session.info`` so
host integrations (event listeners, visibility filters) can read it off the
session instead of a global.
"""
from contextlib import contextmanager
from typing import Iterator, List

from sqlmodel import Session

ADMIN_MODE_KEY = "admin_mode"


class HostContext:
    """Stack of privilege modes for one caller (store, data source, ...)."""

    def __init__(self) -> None:
        self._modes: List[bool] = []

    @property
    def admin_mode(self) -> bool:
        return bool(self._modes) and self._modes[-1]

    @property
    def depth(self) -> int:
        return len(self._modes)

    @contextmanager
    def elevated(self) -> Iterator["HostContext"]:
        """Enter admin mode for the duration of the ``with`` block."""
        self._modes.append(True)
        try:
            yield self
        finally:
            self._modes.pop()

    @contextmanager
    def session(self, engine) -> Iterator[Session]:
        """Elevated Session tagged with the current admin mode."""
        with self.elevated(), Session(engine) as s:
            s.info[ADMIN_MODE_KEY] = self.admin_mode
            yield s
