"""Requests a remote connection hands to a card session, answered once."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from .interfaces import CounterpartyPhononCard

__all__ = [
    "SessionRequest",
    "RequestCertificate",
    "RequestIdentifyCard",
    "RequestCardPair1",
    "RequestFinalizeCardPair",
    "RequestSetRemote",
    "RequestReceivePhonons",
    "RequestGetName",
    "RequestPairWithRemote",
    "RequestSetPaired",
]


@dataclass
class SessionRequest:
    """A request to a session; the session answers with resolve or fail."""

    _done: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False, compare=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )
    _result: Any = field(default=None, init=False, repr=False, compare=False)
    _error: BaseException | None = field(default=None, init=False, repr=False, compare=False)

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def _answer(self, result: Any, error: BaseException | None) -> None:
        with self._lock:
            if self._done.is_set():
                raise RuntimeError(f"{self.name} already answered")
            self._result = result
            self._error = error
            self._done.set()

    def resolve(self, result: Any = None) -> None:
        """Answer the request with a result."""
        self._answer(result, None)

    def fail(self, error: BaseException) -> None:
        """Answer the request with an error that :meth:`wait` will raise."""
        self._answer(None, error)

    def wait(self, timeout: float | None = None) -> Any:
        """Block until answered; return the result or raise the error."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"{self.name} not answered in time")
        if self._error is not None:
            raise self._error
        return self._result


@dataclass
class RequestCertificate(SessionRequest):
    """Ask for the card certificate."""


@dataclass
class RequestIdentifyCard(SessionRequest):
    """Ask the card to sign a nonce; answered with (public key, signature)."""

    nonce: bytes = b""


@dataclass
class RequestCardPair1(SessionRequest):
    payload: bytes = b""


@dataclass
class RequestFinalizeCardPair(SessionRequest):
    payload: bytes = b""


@dataclass
class RequestSetRemote(SessionRequest):
    card: CounterpartyPhononCard | None = None


@dataclass
class RequestReceivePhonons(SessionRequest):
    payload: bytes = b""


@dataclass
class RequestGetName(SessionRequest):
    """Ask for the card identifier."""


@dataclass
class RequestPairWithRemote(SessionRequest):
    card: CounterpartyPhononCard | None = None


@dataclass
class RequestSetPaired(SessionRequest):
    status: bool = False