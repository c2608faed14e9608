import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from stockview.exceptions import InvalidTransitionError, SessionNotFoundError, ValidationError
from stockview.schemas.account import Stock
from stockview.schemas.scrape import (
    RawHolding,
    ScrapePreview,
    ScrapeProgress,
    ScrapeSession,
    ScrapeStatus,
)
from stockview.services.record_store import SCRAPE_SESSIONS, RecordStore, Row

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ScrapeStatus, FrozenSet[ScrapeStatus]] = {
    ScrapeStatus.PENDING: frozenset({ScrapeStatus.RUNNING, ScrapeStatus.FAILED, ScrapeStatus.CANCELLED}),
    ScrapeStatus.RUNNING: frozenset({ScrapeStatus.COMPLETED, ScrapeStatus.FAILED, ScrapeStatus.CANCELLED}),
    ScrapeStatus.COMPLETED: frozenset({ScrapeStatus.CONFIRMED, ScrapeStatus.CANCELLED}),
    ScrapeStatus.FAILED: frozenset(),
    ScrapeStatus.CANCELLED: frozenset(),
    ScrapeStatus.CONFIRMED: frozenset(),
}

SessionChange = Callable[[ScrapeSession], ScrapeSession]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(percent: int) -> int:
    return max(0, min(100, int(percent)))


def transition(session: ScrapeSession, target: ScrapeStatus, **updates) -> ScrapeSession:
    """Return a copy of the session moved to target, or raise InvalidTransitionError."""
    if target not in ALLOWED_TRANSITIONS[session.status]:
        raise InvalidTransitionError(session.id, session.status.value, target.value)
    return session.model_copy(update={"status": target, "updated_at": _now(), **updates})


def apply_change(rows: Sequence[Row], session_id: str, change: SessionChange) -> Tuple[List[Row], ScrapeSession]:
    """
    Apply change to one session within a full table of rows.

    Used both by ScrapeSessionService and by writers that hold the
    scrape_sessions lock as part of a larger transaction.
    """
    new_rows = list(rows)
    for idx, row in enumerate(new_rows):
        if row.get("id") == session_id:
            updated = change(ScrapeSession.model_validate(row))
            new_rows[idx] = updated.model_dump(mode="json")
            return new_rows, updated
    raise SessionNotFoundError(session_id)


class ScrapeSessionService:
    """Lifecycle of scrape sessions. Every change is a locked read-modify-write."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def _mutate(self, session_id: str, change: SessionChange) -> ScrapeSession:
        result: List[ScrapeSession] = []

        def update(rows):
            new_rows, updated = apply_change(rows, session_id, change)
            result.append(updated)
            return new_rows

        await self.store.update_rows(SCRAPE_SESSIONS, update)
        return result[0]

    async def create_session(self, account_name: str, broker_id: str = "groww") -> ScrapeSession:
        name = (account_name or "").strip()
        if not name:
            raise ValidationError("Account name is required")
        now = _now()
        session = ScrapeSession(
            id=str(uuid.uuid4()),
            account_name=name,
            broker_id=broker_id,
            status=ScrapeStatus.PENDING,
            progress=ScrapeProgress(percent=0, stage="queued"),
            created_at=now,
            updated_at=now,
        )
        await self.store.update_rows(SCRAPE_SESSIONS, lambda rows: rows + [session.model_dump(mode="json")])
        logger.info(f"Created scrape session {session.id} for '{name}' ({broker_id})")
        return session

    async def find_session(self, session_id: str) -> Optional[ScrapeSession]:
        for row in await self.store.list_rows(SCRAPE_SESSIONS):
            if row.get("id") == session_id:
                return ScrapeSession.model_validate(row)
        return None

    async def get_session(self, session_id: str) -> ScrapeSession:
        session = await self.find_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, status: Optional[ScrapeStatus] = None) -> List[ScrapeSession]:
        sessions = [ScrapeSession.model_validate(row) for row in await self.store.list_rows(SCRAPE_SESSIONS)]
        if status is not None:
            sessions = [s for s in sessions if s.status == status]
        return sessions

    async def mark_running(self, session_id: str, progress: Optional[ScrapeProgress] = None) -> ScrapeSession:
        def change(session):
            return transition(session, ScrapeStatus.RUNNING, progress=progress or session.progress)

        return await self._mutate(session_id, change)

    async def advance_progress(
        self,
        session_id: str,
        percent: int,
        stage: str,
        message: Optional[str] = None,
    ) -> ScrapeSession:
        """
        Update the progress of a live session.

        The percentage never goes backwards: a lower value keeps the current
        one while the stage text still changes.
        """
        def change(session):
            if session.is_terminal:
                raise InvalidTransitionError(session.id, session.status.value, "progress update")
            progress = ScrapeProgress(
                percent=max(session.progress.percent, _clamp(percent)),
                stage=stage,
                message=message,
            )
            return session.model_copy(update={"progress": progress, "updated_at": _now()})

        return await self._mutate(session_id, change)

    async def attach_preview(
        self,
        session_id: str,
        raw: Sequence[RawHolding],
        mapped: Sequence[Stock],
    ) -> ScrapeSession:
        def change(session):
            if session.status not in (ScrapeStatus.RUNNING, ScrapeStatus.COMPLETED):
                raise InvalidTransitionError(session.id, session.status.value, "attach preview")
            preview = ScrapePreview(raw=list(raw), mapped=list(mapped))
            return session.model_copy(update={"preview": preview, "updated_at": _now()})

        return await self._mutate(session_id, change)

    async def mark_completed(self, session_id: str) -> ScrapeSession:
        def change(session):
            return transition(
                session,
                ScrapeStatus.COMPLETED,
                progress=ScrapeProgress(percent=100, stage="completed"),
            )

        session = await self._mutate(session_id, change)
        logger.info(f"Scrape session {session_id} completed")
        return session

    async def mark_failed(self, session_id: str, error: str, kind: str = "internal") -> ScrapeSession:
        if not (error or "").strip():
            raise ValidationError("A failed session needs an error message")

        def change(session):
            progress = session.progress.model_copy(update={"stage": "failed", "message": error})
            return transition(session, ScrapeStatus.FAILED, progress=progress, error=error, error_kind=kind)

        session = await self._mutate(session_id, change)
        logger.warning(f"Scrape session {session_id} failed ({kind}): {error}")
        return session

    async def mark_cancelled(self, session_id: str) -> ScrapeSession:
        def change(session):
            progress = session.progress.model_copy(update={"stage": "cancelled", "message": None})
            return transition(session, ScrapeStatus.CANCELLED, progress=progress)

        session = await self._mutate(session_id, change)
        logger.info(f"Scrape session {session_id} cancelled")
        return session

    async def mark_confirmed(self, session_id: str) -> ScrapeSession:
        return await self._mutate(session_id, confirm_change)

    async def purge_finished(self, older_than: timedelta) -> int:
        """Delete terminal sessions whose last update is older than older_than."""
        cutoff = _now() - older_than
        removed = []

        def purge(rows):
            kept = []
            for row in rows:
                session = ScrapeSession.model_validate(row)
                if session.is_terminal and session.updated_at < cutoff:
                    removed.append(session.id)
                else:
                    kept.append(row)
            return kept

        await self.store.update_rows(SCRAPE_SESSIONS, purge)
        if removed:
            logger.info(f"Purged {len(removed)} finished scrape session(s)")
        return len(removed)


def confirm_change(session: ScrapeSession) -> ScrapeSession:
    return transition(
        session,
        ScrapeStatus.CONFIRMED,
        progress=ScrapeProgress(percent=100, stage="confirmed"),
    )
