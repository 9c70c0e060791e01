"""The terminal: the set of card sessions this process is working with."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

__all__ = ["PhononTerminal", "new_phonon_terminal"]


class _CardSession(Protocol):
    def get_card_id(self) -> str: ...


@dataclass
class PhononTerminal:
    """Keeps the connected card sessions, at most one per card id."""

    sessions: list[Any] = field(default_factory=list)

    def list_sessions(self) -> list[Any]:
        """The sessions, in the order they were added."""
        return list(self.sessions)

    def session_from_id(self, session_id: str) -> Any | None:
        """The session for the card with ``session_id``, or None."""
        return next((s for s in self.sessions if s.get_card_id() == session_id), None)

    def add_session(self, session: _CardSession) -> None:
        """Add a session unless one for the same card is already present."""
        card_id = session.get_card_id()
        if any(existing.get_card_id() == card_id for existing in self.sessions):
            return
        self.sessions.append(session)

    def remove_session(self, session_id: str) -> None:
        """Drop the first session for the card with ``session_id``, if any."""
        for index, session in enumerate(self.sessions):
            if session.get_card_id() == session_id:
                del self.sessions[index]
                return


_global_terminal = PhononTerminal()


def new_phonon_terminal() -> PhononTerminal:
    """The process wide terminal."""
    return _global_terminal