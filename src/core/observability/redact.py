"""
Redactor — strips registered secrets from anything logged or echoed.

Secrets (DB passwords, API keys, the Django secret key...) are
registered as they become known. Every log line, operator message,
transcript entry and error banner passes through ``redact`` first.

Matching is literal (no regex). Secrets are applied in registration
order, and text that already carries the sentinel is never re-matched,
so ``redact(redact(s)) == redact(s)``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

REDACTED = "[~REDACTED~]"


class Redactor:
    """Append-only secret list plus an on/off switch.

    The list is a copy-on-write tuple: writers swap in a new tuple under
    a lock, readers take a snapshot per call without locking.
    """

    def __init__(self, secrets: Iterable[str] = (), enabled: bool = True):
        self._lock = threading.Lock()
        self._secrets: tuple[str, ...] = ()
        self.enabled = enabled
        self.add_many(secrets)

    @property
    def secrets(self) -> tuple[str, ...]:
        return self._secrets

    def add(self, secret: str) -> None:
        """Register one secret. Empty strings are ignored."""
        if not secret:
            return
        with self._lock:
            if secret not in self._secrets:
                self._secrets = self._secrets + (secret,)

    def add_many(self, secrets: Iterable[str]) -> None:
        for secret in secrets:
            self.add(secret)

    def turn_off(self) -> None:
        self.enabled = False

    def turn_on(self) -> None:
        self.enabled = True

    def redact(self, text: str) -> str:
        """Replace every occurrence of every secret with ``REDACTED``."""
        if not self.enabled:
            return text
        secrets = self._secrets
        if not secrets or not text:
            return text

        # Every boundary between pieces is a sentinel; secrets are only
        # searched for inside the pieces, never across a sentinel.
        pieces = text.split(REDACTED)
        for secret in secrets:
            pieces = [part for piece in pieces for part in piece.split(secret)]
        return REDACTED.join(pieces)

    __call__ = redact
