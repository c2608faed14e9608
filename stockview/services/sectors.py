import logging
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Union

import yaml

from stockview.schemas.account import Stock

logger = logging.getLogger(__name__)

DEFAULT_SECTOR_MAP = Path(__file__).resolve().parent.parent / "data" / "sector_map.yaml"


class SectorInfo(NamedTuple):
    sector: str
    subsector: str


def _normalize(name: str) -> str:
    return name.strip().lower()


class SectorEnricher:
    """
    Static stock name -> (sector, subsector) lookup.

    The table is a YAML mapping under ``by_name``; keys match case-insensitively
    on the trimmed stock name. Unknown names are not an error.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else DEFAULT_SECTOR_MAP
        self._by_name: Optional[Dict[str, SectorInfo]] = None

    def _load(self) -> Dict[str, SectorInfo]:
        if self._by_name is not None:
            return self._by_name

        by_name: Dict[str, SectorInfo] = {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Sector map not found at {self.path}; every stock will be unclassified")
            data = {}

        for name, record in (data.get("by_name") or {}).items():
            if not isinstance(record, dict) or not record.get("sector"):
                logger.warning(f"Skipping malformed sector map entry: {name!r}")
                continue
            by_name[_normalize(str(name))] = SectorInfo(
                sector=str(record["sector"]),
                subsector=str(record.get("subsector") or record["sector"]),
            )

        logger.info(f"Loaded {len(by_name)} sector map entries from {self.path}")
        self._by_name = by_name
        return by_name

    def lookup(self, stock_name: str) -> Optional[SectorInfo]:
        if not stock_name:
            return None
        return self._load().get(_normalize(stock_name))

    def enrich(self, stock: Stock) -> Stock:
        """Fill sector/subsector the scrape did not supply. Supplied values win."""
        if stock.sector and stock.subsector:
            return stock
        info = self.lookup(stock.stock_name)
        if info is None:
            return stock
        return stock.model_copy(update={
            "sector": stock.sector or info.sector,
            "subsector": stock.subsector or info.subsector,
        })
