"""
Terminal base — the contract between the engine and process execution.

This defines the abstract interface every terminal must implement.
The engine only talks to terminals through this protocol, never
directly to ``subprocess``.

A terminal runs ONE shell command per call and returns its output in
one of several shapes. Every call takes a ``CommandContext`` carrying
cancellation and an optional deadline.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod


class CommandContext:
    """Cancellation and deadline carrier for a single command.

    Contexts form a tree: a child made with ``with_timeout`` expires at
    the earlier of its own deadline and its parent's, and is cancelled
    whenever its parent is. Deadlines are ``time.monotonic()`` values.

    Use as a context manager so the child is released when the command
    completes::

        with parent.with_timeout(30) as ctx:
            terminal.exec_error(ctx, "apt-get update", "bash")
    """

    def __init__(
        self,
        deadline: float | None = None,
        parent: CommandContext | None = None,
        timeout: float = 0,
    ):
        self._deadline = deadline
        self._parent = parent
        self._timeout = timeout
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> CommandContext:
        """A context that never expires and is never cancelled (unless asked)."""
        return cls()

    def with_timeout(self, seconds: float) -> CommandContext:
        """Derive a child context. ``seconds == 0`` adds no deadline of its own."""
        if seconds < 0:
            raise ValueError("Timeout cannot be negative and must be zero or greater")

        deadline = self._deadline
        if seconds:
            own = time.monotonic() + seconds
            deadline = own if deadline is None else min(deadline, own)
        return CommandContext(deadline=deadline, parent=self, timeout=seconds or self._timeout)

    @property
    def timeout(self) -> float:
        """The timeout (seconds) this context was created with, 0 if none."""
        return self._timeout

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def cancel(self) -> None:
        self._cancelled.set()

    def release(self) -> None:
        """Cancel this context and detach it from its parent."""
        self._cancelled.set()
        self._parent = None

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None if unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def __enter__(self) -> CommandContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return (
            f"<CommandContext timeout={self._timeout!r} "
            f"cancelled={self.cancelled} expired={self.expired}>"
        )


class Terminal(ABC):
    """Abstract base class for all terminals.

    Every method wraps ``command`` as ``<shell> -c <command>``; special
    characters must already be escaped by the caller.

    Failures are raised as ``TerminalError`` subclasses
    (see ``src.core.engine.errors``):

        - ``CommandStartError``   — process could not be launched
        - ``CommandExitError``    — process exited non-zero
        - ``CommandTimeoutError`` — context deadline elapsed
        - ``CommandCancelledError`` — context cancelled

    To create a new terminal:
        1. Subclass Terminal
        2. Implement the five exec_* methods
        3. Hand it to ``Executor(terminal)``
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The terminal identifier (e.g., 'local', 'mock')."""

    @abstractmethod
    def exec_combined(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        """Run and return stdout and stderr interleaved."""

    @abstractmethod
    def exec_error(self, ctx: CommandContext, command: str, shell: str) -> None:
        """Run, discard all output, raise on failure."""

    @abstractmethod
    def exec_only(self, ctx: CommandContext, command: str, shell: str) -> None:
        """Run, discard output AND failures (best-effort steps)."""

    @abstractmethod
    def exec_stdout(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        """Run and return stdout only; stderr is discarded."""

    @abstractmethod
    def exec_stderr(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        """Run and return stderr only; stdout is discarded."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
