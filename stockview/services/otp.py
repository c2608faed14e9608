import asyncio
import logging
from typing import Dict, List, Tuple

from stockview.exceptions import OTPTimeoutError, ScrapeCancelledError

logger = logging.getLogger(__name__)


class OTPChannel:
    """
    Per-session rendezvous between a running scrape and the human reading an OTP.

    A value provided while nobody waits is held and handed to the next wait for
    the same session; held values expire through purge_expired().
    """

    def __init__(self):
        self._waiters: Dict[str, asyncio.Future] = {}
        self._held: Dict[str, Tuple[str, float]] = {}

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def await_value(self, session_id: str, timeout: float) -> str:
        held = self._held.pop(session_id, None)
        if held is not None:
            logger.info(f"Using OTP provided earlier for session {session_id}")
            return held[0]

        if session_id in self._waiters:
            raise RuntimeError(f"An OTP wait is already pending for session {session_id}")

        future = asyncio.get_running_loop().create_future()
        self._waiters[session_id] = future
        logger.info(f"Waiting up to {timeout:g}s for OTP for session {session_id}")
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"OTP wait timed out for session {session_id}")
            raise OTPTimeoutError(session_id, timeout) from None
        finally:
            if self._waiters.get(session_id) is future:
                del self._waiters[session_id]

    def provide_value(self, session_id: str, value: str) -> bool:
        """Hand an OTP to a waiting scrape. Returns False when nothing was waiting (value is held)."""
        future = self._waiters.get(session_id)
        if future is not None and not future.done():
            future.set_result(value)
            logger.info(f"OTP provided for session {session_id}")
            return True

        try:
            received_at = self._now()
        except RuntimeError:
            received_at = 0.0
        self._held[session_id] = (value, received_at)
        logger.info(f"No pending OTP wait for session {session_id}; value held for the next wait")
        return False

    def is_pending(self, session_id: str) -> bool:
        future = self._waiters.get(session_id)
        return future is not None and not future.done()

    def pending_sessions(self) -> List[str]:
        return [sid for sid, future in self._waiters.items() if not future.done()]

    def cancel(self, session_id: str) -> bool:
        """Wake a pending wait with ScrapeCancelledError and drop any held value."""
        self._held.pop(session_id, None)
        future = self._waiters.get(session_id)
        if future is None or future.done():
            return False
        future.set_exception(ScrapeCancelledError(session_id))
        logger.info(f"OTP wait cancelled for session {session_id}")
        return True

    def purge_expired(self, max_age: float) -> int:
        """Drop held values older than max_age seconds. Returns how many were dropped."""
        now = self._now()
        expired = [sid for sid, (_, received_at) in self._held.items() if now - received_at > max_age]
        for sid in expired:
            del self._held[sid]
        if expired:
            logger.info(f"Discarded {len(expired)} unused OTP value(s)")
        return len(expired)
