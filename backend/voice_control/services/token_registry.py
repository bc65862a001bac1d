"""In-memory registry of refresh tokens that are still honoured."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Set

from voice_control.core.security import decode_token, decode_token_unverified

logger = logging.getLogger(__name__)


class RefreshTokenRegistry:
    """
    Process-wide set of valid refresh tokens.

    A refresh token that verifies cryptographically is only honoured while it
    is present here, which is what makes logout effective for otherwise
    self-contained JWTs. State lives in memory only: it is lost on restart
    and is not shared between instances.

    Handlers run on a thread pool, so every operation takes the lock.
    """

    def __init__(
        self,
        verify: Callable[[str], Optional[Dict]] = decode_token,
        sweep_interval_seconds: float = 3600.0,
    ) -> None:
        self._tokens: Set[str] = set()
        self._lock = threading.Lock()
        self._verify = verify
        self._sweep_interval = sweep_interval_seconds
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_sweep: float = 0.0
        self._swept_count: int = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def register(self, token: str) -> None:
        with self._lock:
            self._tokens.add(token)

    def is_valid(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def revoke(self, token: str) -> None:
        with self._lock:
            self._tokens.discard(token)

    def consume(self, token: str) -> bool:
        """Atomically remove token; True only for the caller that removed it."""
        with self._lock:
            if token not in self._tokens:
                return False
            self._tokens.remove(token)
            return True

    def revoke_all_for_subject(self, subject_id: str) -> int:
        """
        Drop every token issued to subject_id.

        Tokens are decoded without verification; anything that does not
        decode at all is purged as well.

        Returns:
            Number of tokens removed
        """
        with self._lock:
            doomed = []
            for token in self._tokens:
                claims = decode_token_unverified(token)
                if claims is None or claims.get("sub") == subject_id:
                    doomed.append(token)
            self._tokens.difference_update(doomed)

        logger.info("Revoked %d refresh token(s) for subject %s", len(doomed), subject_id)
        return len(doomed)

    def sweep_expired(self) -> int:
        """
        Remove tokens that no longer pass full verification.

        Housekeeping only: an expired token is already rejected at refresh.
        """
        with self._lock:
            snapshot = list(self._tokens)

        # Verification runs outside the lock; removal of an already-revoked
        # token is a no-op.
        doomed = [token for token in snapshot if self._verify(token) is None]

        with self._lock:
            self._tokens.difference_update(doomed)
            self._swept_count += len(doomed)

        if doomed:
            logger.info("Swept %d expired refresh token(s)", len(doomed))
        return len(doomed)

    # Background sweeper

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="refresh-token-sweeper", daemon=True)
        self._thread.start()
        logger.info("Refresh token sweeper started (interval=%ss)", self._sweep_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Refresh token sweeper stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "registered": len(self),
            "last_sweep": self._last_sweep,
            "swept_count": self._swept_count,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Refresh token sweep failed")
            self._last_sweep = time.time()
