import pytest

from stockview.schemas.scrape import ScrapeStatus
from stockview.tasks.scheduler import run_housekeeping


@pytest.mark.asyncio
async def test_housekeeping_purges_finished_sessions_and_stale_otps(services):
    services.settings.session_retention_hours = 0
    services.settings.otp_retention_seconds = 0

    finished = await services.sessions.create_session("Main")
    await services.sessions.mark_cancelled(finished.id)
    live = await services.sessions.create_session("Main")
    services.otp.provide_value("orphan", "123456")

    await run_housekeeping(services)

    remaining = await services.sessions.list_sessions()
    assert [s.id for s in remaining] == [live.id]
    assert remaining[0].status == ScrapeStatus.PENDING
    assert services.otp.purge_expired(0) == 0


@pytest.mark.asyncio
async def test_housekeeping_errors_are_logged_not_raised(services, caplog):
    async def broken():
        raise RuntimeError("database gone")

    services.housekeeping = broken

    await run_housekeeping(services)

    assert "Housekeeping failed" in caplog.text
