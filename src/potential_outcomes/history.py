"""
History Module

Linear undo/redo over full data-state snapshots.

States are immutable, so a snapshot is just a reference to the state as it
was. ``past`` holds states older than the current one (most recent last);
``future`` holds states undone from (next redo first).
"""

from typing import Generic, List, TypeVar

from .exceptions import NoHistoryError

T = TypeVar('T')


class History(Generic[T]):
    """
    Bidirectional stack of snapshots.

    Every mutation calls :meth:`push` with the state it is about to replace,
    which also discards the redo branch. :meth:`undo` and :meth:`redo` take
    the current state and return the one to restore.

    Examples
    --------
    >>> h = History()
    >>> h.push('a')          # 'a' is replaced by 'b'
    >>> h.undo('b')
    'a'
    >>> h.redo('a')
    'b'
    """

    def __init__(self) -> None:
        self._past: List[T] = []
        self._future: List[T] = []

    @property
    def past(self) -> List[T]:
        return list(self._past)

    @property
    def future(self) -> List[T]:
        return list(self._future)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def push(self, previous: T) -> None:
        """Record the pre-mutation state and clear the redo branch."""
        self._past.append(previous)
        self._future.clear()

    def undo(self, current: T) -> T:
        """
        Step back one state.

        Raises
        ------
        NoHistoryError
            If there is nothing to undo.
        """
        if not self._past:
            raise NoHistoryError("Nothing to undo")
        previous = self._past.pop()
        self._future.append(current)
        return previous

    def redo(self, current: T) -> T:
        """
        Step forward one state.

        Raises
        ------
        NoHistoryError
            If there is nothing to redo.
        """
        if not self._future:
            raise NoHistoryError("Nothing to redo")
        following = self._future.pop()
        self._past.append(current)
        return following

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def __len__(self) -> int:
        return len(self._past) + len(self._future)
