import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from stockview.schemas.account import Account, Stock
from stockview.services.finance import compute_stock_derived_fields
from stockview.services.portfolio import regenerate_views, with_summary
from stockview.services.record_store import (
    ACCOUNTS,
    SCRAPE_SESSIONS,
    STOCKS,
    VIEW_ACCOUNTS,
    VIEW_STOCKS,
    VIEWS,
    RecordStore,
    dump_rows,
)
from stockview.services.scrape_sessions import apply_change, confirm_change
from stockview.services.sectors import SectorEnricher

logger = logging.getLogger(__name__)

COMMIT_TABLES = (ACCOUNTS, STOCKS, VIEWS, VIEW_ACCOUNTS, VIEW_STOCKS, SCRAPE_SESSIONS)


class CommitService:
    """
    Turns a completed scrape preview into persisted holdings.

    The account, its stocks, every view that contains it and the session
    status are written in one transaction: either all of it lands or none.
    """

    def __init__(self, store: RecordStore, enricher: SectorEnricher):
        self.store = store
        self.enricher = enricher

    def _build_stock_set(
        self,
        account: Account,
        previews: List[Stock],
        existing: Dict[str, Stock],
        now: datetime,
    ) -> List[Stock]:
        by_name: Dict[str, Stock] = {}
        for preview in previews:
            name = preview.stock_name.strip()
            if not name:
                continue
            prior: Optional[Stock] = existing.get(name)
            stock = Stock(
                id=prior.id if prior else str(uuid.uuid4()),
                account_id=account.id,
                account_name=account.name,
                stock_name=name,
                avg_price=preview.avg_price,
                market_price=preview.market_price,
                quantity=preview.quantity,
                sector=preview.sector or (prior.sector if prior else None),
                subsector=preview.subsector or (prior.subsector if prior else None),
                cap_category=preview.cap_category or (prior.cap_category if prior else None),
                created_at=prior.created_at if prior else now,
                updated_at=now,
                **compute_stock_derived_fields(preview.quantity, preview.avg_price, preview.market_price),
            )
            by_name[name] = self.enricher.enrich(stock)
        return list(by_name.values())

    async def confirm(self, session_id: str) -> Account:
        async with self.store.locked(*COMMIT_TABLES) as tx:
            # raises before anything is staged unless the session is completed
            session_rows, session = apply_change(
                await tx.list_rows(SCRAPE_SESSIONS), session_id, confirm_change
            )

            now = datetime.now(timezone.utc)
            previews = session.preview.mapped if session.preview else []

            account_rows = await tx.list_rows(ACCOUNTS)
            key = session.account_name.strip().lower()
            account = next(
                (Account.model_validate(row) for row in account_rows
                 if str(row.get("name", "")).strip().lower() == key),
                None,
            )
            if account is None:
                account = Account(id=str(uuid.uuid4()), name=session.account_name.strip(),
                                  created_at=now, updated_at=now)
                logger.info(f"Creating account '{account.name}' from scrape {session_id}")

            stock_rows = await tx.list_rows(STOCKS)
            existing = {
                row["stock_name"]: Stock.model_validate(row)
                for row in stock_rows if row.get("account_id") == account.id
            }
            stocks = self._build_stock_set(account, previews, existing, now)
            dropped = set(existing) - {stock.stock_name for stock in stocks}

            tx.replace_rows(
                STOCKS,
                [row for row in stock_rows if row.get("account_id") != account.id] + dump_rows(stocks),
            )

            account = with_summary(account, stocks, now)
            account_row = account.model_dump(mode="json")
            if any(row.get("id") == account.id for row in account_rows):
                account_rows = [account_row if row.get("id") == account.id else row for row in account_rows]
            else:
                account_rows = account_rows + [account_row]
            tx.replace_rows(ACCOUNTS, account_rows)

            view_ids = {
                row["view_id"] for row in await tx.list_rows(VIEW_ACCOUNTS) if row.get("account_id") == account.id
            }
            await regenerate_views(tx, view_ids, now)

            tx.replace_rows(SCRAPE_SESSIONS, session_rows)

        logger.info(
            f"Confirmed scrape {session_id}: {len(stocks)} stocks for '{account.name}', "
            f"{len(dropped)} dropped, {len(view_ids)} view(s) regenerated"
        )
        return account
