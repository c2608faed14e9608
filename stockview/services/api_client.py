import aiohttp
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class StockviewClient:
    """Small aiohttp client for the stockview HTTP API, used by the operator scripts."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "StockviewClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _request(self, method: str, path: str, json: Optional[Dict] = None) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, json=json, timeout=aiohttp.ClientTimeout(total=30)) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Request failed for {method} {url}: {e}")
            raise

    async def provide_otp(self, job_id: str, otp: str) -> Dict[str, Any]:
        """Submit an OTP for a scrape job. Returns {job_id, accepted, held}."""
        return await self._request("POST", f"/scrape/{job_id}/otp", json={"otp": otp})

    async def pending_otp_jobs(self) -> List[str]:
        data = await self._request("GET", "/scrape/otp/pending")
        return data.get("job_ids", [])

    async def job_status(self, job_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/scrape/{job_id}/status")
