import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from stockview.exceptions import DuplicateNameError, NotFoundError, ValidationError
from stockview.schemas.account import Account, Stock
from stockview.schemas.view import View, ViewAccount, ViewDetailResponse, ViewStock
from stockview.services.aggregation import aggregate_stocks_for_view
from stockview.services.finance import summarize_stocks
from stockview.services.record_store import (
    ACCOUNTS,
    STOCKS,
    VIEW_ACCOUNTS,
    VIEW_STOCKS,
    VIEWS,
    RecordStore,
    Row,
    TableTransaction,
    dump_rows,
)
from stockview.services.sectors import SectorEnricher

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_name(name: str, kind: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{kind} name is required")
    return cleaned


def _name_taken(rows: Iterable[Row], name: str) -> bool:
    key = name.strip().lower()
    return any(str(row.get("name", "")).strip().lower() == key for row in rows)


def with_summary(account: Account, stocks: Sequence[Stock], now: datetime) -> Account:
    """Recompute the derived totals of an account from its stock set."""
    summary = summarize_stocks(stocks)
    return account.model_copy(update={
        "invested_value": summary.total_invested_value,
        "current_value": summary.total_current_value,
        "pnl": summary.total_pnl,
        "pnl_percent": summary.total_pnl_percent,
        "updated_at": now,
    })


async def regenerate_views(tx: TableTransaction, view_ids: Iterable[str], now: datetime) -> List[View]:
    """
    Rebuild the ViewStocks and summary of each view from its member accounts.

    Reads through the transaction, so stock changes staged earlier in the same
    transaction are what gets aggregated. Needs VIEWS and VIEW_STOCKS locked.
    """
    targets = set(view_ids)
    if not targets:
        return []

    stocks = [Stock.model_validate(row) for row in await tx.list_rows(STOCKS)]
    memberships = await tx.list_rows(VIEW_ACCOUNTS)
    view_stock_rows = [row for row in await tx.list_rows(VIEW_STOCKS) if row.get("view_id") not in targets]

    views = []
    regenerated = []
    for row in await tx.list_rows(VIEWS):
        view = View.model_validate(row)
        if view.id in targets:
            members = {m["account_id"] for m in memberships if m.get("view_id") == view.id}
            aggregated = aggregate_stocks_for_view([s for s in stocks if s.account_id in members])
            view_stock_rows.extend(dump_rows(
                ViewStock(id=str(uuid.uuid4()), view_id=view.id, updated_at=now, **agg.model_dump())
                for agg in aggregated
            ))
            view = view.model_copy(update={"view_summary": summarize_stocks(aggregated), "updated_at": now})
            regenerated.append(view)
            logger.info(f"Regenerated view '{view.name}' with {len(aggregated)} positions")
        views.append(view)

    tx.replace_rows(VIEWS, dump_rows(views))
    tx.replace_rows(VIEW_STOCKS, view_stock_rows)
    return regenerated


class AccountService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def list_accounts(self) -> List[Account]:
        return [Account.model_validate(row) for row in await self.store.list_rows(ACCOUNTS)]

    async def find_account_by_name(self, name: str) -> Optional[Account]:
        key = name.strip().lower()
        for account in await self.list_accounts():
            if account.name.strip().lower() == key:
                return account
        return None

    async def get_account(self, account_id: str) -> Account:
        for account in await self.list_accounts():
            if account.id == account_id:
                return account
        raise NotFoundError("Account", account_id)

    async def get_account_stocks(self, account_id: str) -> List[Stock]:
        await self.get_account(account_id)
        return [
            Stock.model_validate(row)
            for row in await self.store.list_rows(STOCKS)
            if row.get("account_id") == account_id
        ]

    async def is_name_unique(self, name: str) -> bool:
        return not _name_taken(await self.store.list_rows(ACCOUNTS), name)

    async def create_account(self, name: str) -> Account:
        name = _clean_name(name, "Account")
        async with self.store.locked(ACCOUNTS) as tx:
            rows = await tx.list_rows(ACCOUNTS)
            if _name_taken(rows, name):
                raise DuplicateNameError("Account", name)
            now = _now()
            account = Account(id=str(uuid.uuid4()), name=name, created_at=now, updated_at=now)
            tx.replace_rows(ACCOUNTS, rows + [account.model_dump(mode="json")])
        logger.info(f"Created account '{name}'")
        return account

    async def delete_account(self, account_id: str) -> None:
        """Remove the account, its stocks and its view memberships, then rebuild the views it was in."""
        async with self.store.locked(ACCOUNTS, STOCKS, VIEWS, VIEW_ACCOUNTS, VIEW_STOCKS) as tx:
            accounts = await tx.list_rows(ACCOUNTS)
            if not any(row.get("id") == account_id for row in accounts):
                raise NotFoundError("Account", account_id)

            memberships = await tx.list_rows(VIEW_ACCOUNTS)
            affected_views = {m["view_id"] for m in memberships if m.get("account_id") == account_id}

            tx.replace_rows(ACCOUNTS, [row for row in accounts if row.get("id") != account_id])
            tx.replace_rows(
                STOCKS, [row for row in await tx.list_rows(STOCKS) if row.get("account_id") != account_id]
            )
            tx.replace_rows(VIEW_ACCOUNTS, [m for m in memberships if m.get("account_id") != account_id])
            await regenerate_views(tx, affected_views, _now())
        logger.info(f"Deleted account {account_id}")


class ViewService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def list_views(self) -> List[View]:
        return [View.model_validate(row) for row in await self.store.list_rows(VIEWS)]

    async def get_view(self, view_id: str) -> View:
        for view in await self.list_views():
            if view.id == view_id:
                return view
        raise NotFoundError("View", view_id)

    async def get_view_detail(self, view_id: str) -> ViewDetailResponse:
        view = await self.get_view(view_id)
        account_ids = [
            row["account_id"] for row in await self.store.list_rows(VIEW_ACCOUNTS) if row.get("view_id") == view_id
        ]
        return ViewDetailResponse(view=view, account_ids=account_ids)

    async def get_view_stocks(self, view_id: str) -> List[ViewStock]:
        await self.get_view(view_id)
        return [
            ViewStock.model_validate(row)
            for row in await self.store.list_rows(VIEW_STOCKS)
            if row.get("view_id") == view_id
        ]

    async def is_name_unique(self, name: str) -> bool:
        return not _name_taken(await self.store.list_rows(VIEWS), name)

    async def create_view(self, name: str, account_ids: Sequence[str]) -> View:
        """Create a view over existing accounts and build its aggregated holdings."""
        name = _clean_name(name, "View")
        member_ids = list(dict.fromkeys(account_ids))

        async with self.store.locked(ACCOUNTS, STOCKS, VIEWS, VIEW_ACCOUNTS, VIEW_STOCKS) as tx:
            views = await tx.list_rows(VIEWS)
            if _name_taken(views, name):
                raise DuplicateNameError("View", name)

            known = {row.get("id") for row in await tx.list_rows(ACCOUNTS)}
            unknown = [account_id for account_id in member_ids if account_id not in known]
            if unknown:
                raise ValidationError(f"Unknown account(s): {', '.join(unknown)}")

            now = _now()
            view = View(id=str(uuid.uuid4()), name=name, created_at=now, updated_at=now)
            memberships = [
                ViewAccount(id=str(uuid.uuid4()), view_id=view.id, account_id=account_id)
                for account_id in member_ids
            ]
            tx.replace_rows(VIEWS, views + [view.model_dump(mode="json")])
            tx.replace_rows(VIEW_ACCOUNTS, await tx.list_rows(VIEW_ACCOUNTS) + dump_rows(memberships))
            regenerated = await regenerate_views(tx, [view.id], now)

        logger.info(f"Created view '{name}' over {len(member_ids)} account(s)")
        return regenerated[0]

    async def delete_view(self, view_id: str) -> None:
        async with self.store.locked(VIEWS, VIEW_ACCOUNTS, VIEW_STOCKS) as tx:
            views = await tx.list_rows(VIEWS)
            if not any(row.get("id") == view_id for row in views):
                raise NotFoundError("View", view_id)
            tx.replace_rows(VIEWS, [row for row in views if row.get("id") != view_id])
            tx.replace_rows(
                VIEW_ACCOUNTS, [row for row in await tx.list_rows(VIEW_ACCOUNTS) if row.get("view_id") != view_id]
            )
            tx.replace_rows(
                VIEW_STOCKS, [row for row in await tx.list_rows(VIEW_STOCKS) if row.get("view_id") != view_id]
            )
        logger.info(f"Deleted view {view_id}")


async def backfill_stock_sectors(store: RecordStore, enricher: SectorEnricher, apply: bool = True) -> List[Stock]:
    """
    Fill sector/subsector on stored stocks that lack them and rebuild the
    views containing the changed accounts. Returns the stocks that changed.
    With apply=False nothing is written.
    """
    async with store.locked(STOCKS, VIEWS, VIEW_ACCOUNTS, VIEW_STOCKS) as tx:
        stocks = [Stock.model_validate(row) for row in await tx.list_rows(STOCKS)]
        changed = []
        updated = []
        for stock in stocks:
            enriched = enricher.enrich(stock)
            if (enriched.sector, enriched.subsector) != (stock.sector, stock.subsector):
                changed.append(enriched)
            updated.append(enriched)

        if apply and changed:
            tx.replace_rows(STOCKS, dump_rows(updated))
            account_ids = {stock.account_id for stock in changed}
            view_ids = {
                m["view_id"] for m in await tx.list_rows(VIEW_ACCOUNTS) if m.get("account_id") in account_ids
            }
            await regenerate_views(tx, view_ids, _now())

    if changed:
        logger.info(f"Sector backfill {'updated' if apply else 'would update'} {len(changed)} stock(s)")
    return changed
