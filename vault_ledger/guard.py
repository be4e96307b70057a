"""Reentrancy lock and all-or-nothing rollback for mutating entry points.

An object taking part in atomic operations implements ``checkpoint()`` / ``rollback(snapshot)``
and, when it drives other journaled objects, ``journal_participants()``. ``@atomic`` methods
collect the whole participant graph, snapshot it on entry and restore every snapshot if the
call raises, so a failed operation never leaves partial state behind.
"""

import functools
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol, TypeVar, runtime_checkable

from vault_ledger.errors import ReentrancyError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@runtime_checkable
class Journaled(Protocol):
    """Something whose state can be captured and restored."""

    def checkpoint(self) -> Any: ...

    def rollback(self, snapshot: Any) -> None: ...


def collect_participants(roots: Iterable[Any]) -> list[Any]:
    """Walk `journal_participants()` links and return every journaled object once."""
    seen: set[int] = set()
    out: list[Any] = []
    stack = list(roots)
    while stack:
        obj = stack.pop()
        if obj is None or id(obj) in seen:
            continue
        seen.add(id(obj))
        if isinstance(obj, Journaled):
            out.append(obj)
        children = getattr(obj, "journal_participants", None)
        if children is not None:
            stack.extend(children())
    return out


class AtomicGuard:
    """Non-reentrant scope that rolls back all participants on failure."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def enter(self, roots: Iterable[Any]) -> Iterator[None]:
        if self._entered:
            raise ReentrancyError(f"{self.name}: reentrant call")
        self._entered = True
        try:
            snapshots = [(p, p.checkpoint()) for p in collect_participants(roots)]
            try:
                yield
            except Exception as ex:
                for participant, snapshot in reversed(snapshots):
                    participant.rollback(snapshot)
                logger.debug("%s: rolled back %d participant(s) after %s", self.name, len(snapshots), ex)
                raise
        finally:
            self._entered = False


def atomic(method: F) -> F:
    """
    Run a method under its owner's `AtomicGuard`.

    The owner must expose `_guard` (an `AtomicGuard`) and `journal_participants()`;
    the owner itself is always part of the snapshot set.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._guard.enter([self]):
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
