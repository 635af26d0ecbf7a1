import logging
from dataclasses import dataclass

from .exceptions import DiCallableError, DiError
from .types import Cleanup

logger = logging.getLogger(__name__)


def noop() -> None:
    """Cleanup that releases nothing."""


class _Once:
    """Idempotent wrapper: the wrapped callback runs on the first call only."""

    __slots__ = ("_func", "_exhausted")

    def __init__(self, func: Cleanup) -> None:
        self._func: Cleanup = func
        self._exhausted: bool = False

    def __call__(self) -> None:
        if self._exhausted:
            return
        self._exhausted = True
        self._func()

    @property
    def exhausted(self) -> bool:
        return self._exhausted


def once(func: Cleanup | None, /) -> Cleanup:
    """Make `func` idempotent. `None` becomes a no-op cleanup."""

    if func is None:
        return noop
    if isinstance(func, _Once) or func is noop:
        return func
    return _Once(func)


def run_all(callbacks: list[Cleanup], /, what: str = "cleanup") -> None:
    """
    Run every callback in the given order, even if some fail.

    Raises:
        * `DiCallableError`: After all callbacks ran, if at least one raised
    """

    errors: list[str] = []
    first: BaseException | None = None
    for callback in callbacks:
        try:
            callback()
        except Exception as exc:
            logger.debug("%s callback %r raised", what, callback, exc_info=True)
            errors.append(f"{exc!s}")
            first = first or exc

    if errors:
        err_msg: str = _construct_err_msg(errors, what=what)
        # A single container error is passed through as-is
        if len(errors) == 1 and isinstance(first, DiError):
            raise first
        raise DiCallableError(err_msg, cause=first, service="CleanupChain")


def _construct_err_msg(errors: list[str], /, what: str) -> str:
    _errs: str = "Errors" if len(errors) > 1 else "Error"
    err_msg: str = f"{_errs} raised while running {what}:"
    for index, err in enumerate[str](errors):
        err_msg += f"\n    Error {index}: {err}"

    return err_msg


# ======================================================================================
#   Chain
# ======================================================================================


@dataclass(frozen=True, slots=True)
class _Link:
    release: Cleanup
    """Runs when the composed cleanup fires."""
    undo: Cleanup | None
    """Runs on rollback; `None` for resources that existed before this attempt."""


class CleanupChain:
    """
    Collects the cleanups acquired while one wiring or resolution call recurses.

    `compose()` turns the collected links into one idempotent cleanup that runs the
    children in reverse acquisition order and then the node's own cleanup.
    `rollback()` is the failure path: it undoes, in reverse order, only what was
    freshly created during this attempt.
    """

    def __init__(self) -> None:
        self._links: list[_Link] = []

    def __len__(self) -> int:
        return len(self._links)

    def acquire(self, release: Cleanup, /, undo: Cleanup | None = None) -> None:
        """Record a child cleanup. Pass `undo` when the resource is new."""

        self._links.append(_Link(release=once(release), undo=undo))

    def compose(self, own: Cleanup | None = None, /) -> Cleanup:
        """Compose children (reverse order), then `own`, into one idempotent cleanup."""

        callbacks: list[Cleanup] = [
            link.release for link in reversed(self._links) if link.release is not noop
        ]
        if own is not None and own is not noop:
            callbacks.append(own)
        if not callbacks:
            return noop

        def cleanup() -> None:
            run_all(callbacks)

        return once(cleanup)

    def undo(self) -> Cleanup | None:
        """Compose the rollback of this chain into a single callback."""

        callbacks: list[Cleanup] = [
            link.undo for link in reversed(self._links) if link.undo is not None
        ]
        if not callbacks:
            return None

        def undo() -> None:
            run_all(callbacks, what="rollback")

        return undo

    def rollback(self) -> None:
        """
        Release everything freshly acquired in this attempt, most recent first.
        Errors raised by the undo callbacks are logged, as the failure that caused
        the rollback is the one that surfaces.
        """

        undo: Cleanup | None = self.undo()
        self._links.clear()
        if undo is None:
            return

        logger.warning("Rolling back partially acquired dependencies")
        try:
            undo()
        except DiError:
            logger.exception("Rollback did not complete cleanly")
