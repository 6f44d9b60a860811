"""
Symbol search - full catalog plus a debounced ticker filter
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from .data_sources import MarketDataGateway, Symbol


class SearchState(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    FAILED = 'failed'


def filter_symbols(catalog: list, term: str) -> list:
    """Catalog entries whose ticker contains term, ignoring case"""
    needle = term.lower()
    if term == '':
        return list(catalog)
    return [s for s in catalog if needle in s.symbol.lower()]


class SymbolSearch:
    """Owns the symbol catalog and the pending debounce timer"""

    DEBOUNCE_SEC = 0.3

    def __init__(self, gateway: MarketDataGateway, debounce_sec: float = DEBOUNCE_SEC,
                 on_change: Optional[Callable[['SymbolSearch'], None]] = None):
        self.gateway = gateway
        self.debounce_sec = debounce_sec
        self.on_change = on_change
        self.state = SearchState.IDLE
        self.catalog: list = []
        self.filtered: list = []
        self.term = ''
        self.error: Optional[str] = None
        self._pending: Optional[asyncio.TimerHandle] = None

    @property
    def loading(self) -> bool:
        return self.state == SearchState.LOADING

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def _notify(self):
        if self.on_change:
            self.on_change(self)

    async def load(self):
        """Fetch the catalog once; READY with symbols or FAILED"""
        self.state = SearchState.LOADING
        self.error = None
        self._notify()

        result = await self.gateway.get_symbols()
        if not result.ok or not result.data:
            self.catalog = []
            self.filtered = []
            self.error = str(result.error) if result.error else "Failed to fetch stock symbols."
            self.state = SearchState.FAILED
            print(f"[SEARCH] Catalog unavailable: {self.error}")
        else:
            self.catalog = list(result.data)
            self.filtered = filter_symbols(self.catalog, self.term)
            self.state = SearchState.READY
            print(f"[SEARCH] Catalog ready ({len(self.catalog)} symbols)")
        self._notify()

    def set_term(self, term: str):
        """Record a keystroke; only the last one inside the debounce window recomputes"""
        self.term = term or ''
        self.cancel_pending()

        if self.term == '':
            self.filtered = list(self.catalog)
            self._notify()
            return

        if self.state != SearchState.READY:
            # Applied once the catalog arrives
            return

        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.debounce_sec, self._apply, self.term)

    def _apply(self, term: str):
        self._pending = None
        if term != self.term:
            return
        self.filtered = filter_symbols(self.catalog, term)
        self._notify()

    def cancel_pending(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def find(self, ticker: str) -> Optional[Symbol]:
        ticker = ticker.strip().upper()
        for s in self.catalog:
            if s.symbol.upper() == ticker:
                return s
        return None

    def close(self):
        self.cancel_pending()

    def to_dict(self, limit: int = 200) -> dict:
        return {
            'state': self.state.value,
            'term': self.term,
            'error': self.error,
            'total': len(self.catalog),
            'matches': len(self.filtered),
            'symbols': [s.to_dict() for s in self.filtered[:limit]],
        }
