import logging
from typing import List, Optional

from stockview.exceptions import DuplicateNameError, NotFoundError
from stockview.schemas.credentials import BrokerCredentials, CredentialUpdate, StoredCredential
from stockview.services.record_store import CREDENTIALS, RecordStore

logger = logging.getLogger(__name__)


def _key(account_name: str) -> str:
    return account_name.strip().lower()


class CredentialProvider:
    """Resolves an account name to broker login credentials from the credentials table."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def list_credentials(self) -> List[StoredCredential]:
        return [StoredCredential.model_validate(row) for row in await self.store.list_rows(CREDENTIALS)]

    async def get_stored(self, account_name: str) -> Optional[StoredCredential]:
        key = _key(account_name)
        for credential in await self.list_credentials():
            if _key(credential.account_name) == key:
                return credential
        return None

    async def get_credentials_for_scraping(self, account_name: str) -> Optional[BrokerCredentials]:
        """
        Credentials in the shape the browser driver expects, or None.

        None means the scrape runs in manual-login mode.
        """
        stored = await self.get_stored(account_name)
        if stored is None:
            logger.info(f"No stored credentials for '{account_name}', scrape will use manual login")
            return None
        return BrokerCredentials(username=stored.email, password=stored.password, pin=stored.pin)

    async def create_credentials(self, credential: StoredCredential) -> StoredCredential:
        credential = credential.model_copy(update={"account_name": credential.account_name.strip()})
        key = _key(credential.account_name)

        def insert(rows):
            if any(_key(str(r.get("account_name", ""))) == key for r in rows):
                raise DuplicateNameError("Credentials", credential.account_name)
            return rows + [credential.model_dump(mode="json")]

        await self.store.update_rows(CREDENTIALS, insert)
        logger.info(f"Saved credentials for '{credential.account_name}'")
        return credential

    async def update_credentials(self, account_name: str, changes: CredentialUpdate) -> StoredCredential:
        key = _key(account_name)
        updated = []

        def update(rows):
            new_rows = []
            for row in rows:
                if _key(str(row.get("account_name", ""))) == key:
                    credential = StoredCredential.model_validate(row).model_copy(
                        update=changes.model_dump(exclude_none=True)
                    )
                    updated.append(credential)
                    row = credential.model_dump(mode="json")
                new_rows.append(row)
            if not updated:
                raise NotFoundError("Credentials", account_name)
            return new_rows

        await self.store.update_rows(CREDENTIALS, update)
        logger.info(f"Updated credentials for '{updated[0].account_name}'")
        return updated[0]

    async def delete_credentials(self, account_name: str) -> bool:
        key = _key(account_name)
        removed = []

        def drop(rows):
            kept = []
            for row in rows:
                if _key(str(row.get("account_name", ""))) == key:
                    removed.append(row)
                else:
                    kept.append(row)
            return kept

        await self.store.update_rows(CREDENTIALS, drop)
        if removed:
            logger.info(f"Deleted credentials for '{account_name}'")
        return bool(removed)
