#!/usr/bin/env python3
"""
Fill in missing sector/subsector on stored stocks from the sector map and
regenerate the views that contain them.

Usage:
    python scripts/backfill_sectors.py           # Dry run (show what would change)
    python scripts/backfill_sectors.py --apply   # Actually apply changes
"""

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

from stockview.config import get_settings  # noqa: E402
from stockview.database import create_engine, create_session_factory, init_db  # noqa: E402
from stockview.services.portfolio import backfill_stock_sectors  # noqa: E402
from stockview.services.record_store import RecordStore  # noqa: E402
from stockview.services.sectors import SectorEnricher  # noqa: E402


async def run(apply: bool, sector_map: str = None):
    settings = get_settings()
    engine = create_engine(settings.database_url)
    try:
        await init_db(engine)
        store = RecordStore(create_session_factory(engine))
        enricher = SectorEnricher(sector_map or settings.sector_map_path)

        print("=" * 60)
        print("Backfilling sectors for stored stocks" + ("" if apply else " (dry run)"))
        print("=" * 60)

        changed = await backfill_stock_sectors(store, enricher, apply=apply)

        if not changed:
            print("\nNo stocks need a sector. Nothing to do.")
            return

        for stock in changed:
            print(f"  {stock.account_name:<20} {stock.stock_name:<35} -> {stock.sector} / {stock.subsector}")

        print("\n" + "=" * 60)
        if apply:
            print(f"Done! Updated {len(changed)} stock(s) and regenerated affected views.")
        else:
            print(f"{len(changed)} stock(s) would be updated. Re-run with --apply to write.")
        print("=" * 60)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Backfill stock sectors from the sector map")
    parser.add_argument("--apply", action="store_true", help="Actually apply changes (default is dry run)")
    parser.add_argument("--sector-map", help="Path to a sector map YAML file (default: SECTOR_MAP_PATH setting)")
    args = parser.parse_args()

    asyncio.run(run(args.apply, args.sector_map))


if __name__ == "__main__":
    main()
