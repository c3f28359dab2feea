"""
Optimistic update helper: snapshot -> apply -> commit-or-revert.

The local change is applied before the request goes out. If the request
raises (including cancellation) the snapshot is restored and the error
re-raised; on success the optional commit replaces the optimistic value
with the server's answer.
"""

from typing import Awaitable, Callable, Generic, Optional, TypeVar

S = TypeVar("S")
R = TypeVar("R")


class OptimisticUpdate(Generic[S, R]):
    def __init__(
        self,
        snapshot: Callable[[], S],
        apply: Callable[[], None],
        revert: Callable[[S], None],
        commit: Optional[Callable[[R], None]] = None,
    ):
        self._snapshot = snapshot
        self._apply = apply
        self._revert = revert
        self._commit = commit

    async def run(self, request: Callable[[], Awaitable[R]]) -> R:
        saved = self._snapshot()
        self._apply()
        try:
            result = await request()
        except BaseException:
            self._revert(saved)
            raise
        if self._commit is not None:
            self._commit(result)
        return result


def replace_attribute(
    target: object,
    name: str,
    value,
    commit: Optional[Callable[[R], object]] = None,
) -> OptimisticUpdate:
    """Optimistically set ``target.name`` to ``value``; the commit result becomes the final value."""
    return OptimisticUpdate(
        snapshot=lambda: getattr(target, name),
        apply=lambda: setattr(target, name, value),
        revert=lambda saved: setattr(target, name, saved),
        commit=(lambda result: setattr(target, name, commit(result))) if commit else None,
    )
