"""
View state - everything the page renders, fed by the gateway, search, stream and charts
"""

import asyncio
import itertools
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .charts import CHART_TYPES, ChartCanvas, ChartController
from .config import DashboardConfig
from .data_sources import MarketDataGateway
from .search import SymbolSearch
from .stream import LiveQuoteStream

FETCH_SOURCES = ('historical', 'ratios', 'kpis', 'news')
SOURCES = ('symbols',) + FETCH_SOURCES + ('stream',)


class Panel(str, Enum):
    KPI = 'kpi'
    RATIOS = 'ratios'
    GRAPH = 'graph'


@dataclass
class SourceStatus:
    """Loading and data presence are tracked separately"""
    loading: bool = False
    loaded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {'loading': self.loading, 'loaded': self.loaded, 'error': self.error}


@dataclass
class Notice:
    """Dismissible message for a failed fetch"""
    id: int
    source: str
    message: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'source': self.source, 'message': self.message}


@dataclass
class DashboardOptions:
    live_ticker: bool = True
    news: bool = True
    dark_mode: bool = False
    chart_type: str = 'line'

    @classmethod
    def from_config(cls, config: DashboardConfig) -> 'DashboardOptions':
        return cls(live_ticker=config.live_ticker, news=config.news, dark_mode=config.dark_mode)


def title_case(key: str) -> str:
    """camelCase metric key -> 'Camel Case'"""
    words = re.sub(r'([A-Z])', r' \1', key).strip().split()
    return ' '.join(w[:1].upper() + w[1:] for w in words)


def metric_rows(record: dict) -> list:
    rows = []
    for key, value in record.items():
        if isinstance(value, float):
            value = round(value, 4)
        rows.append({'key': key, 'label': title_case(key), 'value': value})
    return rows


class DashboardView:
    """UI-facing state for one mounted dashboard"""

    def __init__(self, gateway: MarketDataGateway, stream: Optional[LiveQuoteStream] = None,
                 options: Optional[DashboardOptions] = None,
                 debounce_sec: float = SymbolSearch.DEBOUNCE_SEC,
                 on_change: Optional[Callable[['DashboardView'], None]] = None):
        self.gateway = gateway
        self.options = options or DashboardOptions()
        self.on_change = on_change

        self.search = SymbolSearch(gateway, debounce_sec, on_change=self._on_search_change)
        self.stream = stream if self.options.live_ticker else None
        if self.stream is not None:
            self.stream.on_update = self._on_stream_update

        self.history_chart = ChartController(ChartCanvas('historical'),
                                             chart_type=self.options.chart_type,
                                             dark=self.options.dark_mode)
        self.live_chart = ChartController(ChartCanvas('live'), live=True,
                                          chart_type=self.options.chart_type,
                                          dark=self.options.dark_mode)

        self.selected_symbol: Optional[str] = None
        self.panel = Panel.GRAPH
        self.dark_mode = self.options.dark_mode
        self.chart_type = self.options.chart_type

        self.historicals: list = []
        self.ratios: dict = {}
        self.kpis: dict = {}
        self.news: list = []

        self.status = {source: SourceStatus() for source in SOURCES}
        self.notices: list = []
        self._notice_ids = itertools.count(1)
        self._selection = 0

    @classmethod
    def from_config(cls, config: DashboardConfig,
                    on_change: Optional[Callable[['DashboardView'], None]] = None) -> 'DashboardView':
        stream = None
        if config.live_ticker:
            stream = LiveQuoteStream(config.stream_url, capacity=config.live_capacity)
        return cls(MarketDataGateway.from_config(config), stream,
                   DashboardOptions.from_config(config), config.debounce_sec, on_change)

    def _changed(self):
        if self.on_change:
            self.on_change(self)

    def _add_notice(self, source: str, message: str):
        self.notices.append(Notice(next(self._notice_ids), source, message))

    async def start(self):
        """Mount: load the symbol catalog"""
        await self.search.load()

    async def close(self):
        """Unmount: cancel the debounce, drop the stream, release both charts"""
        self.search.close()
        if self.stream is not None:
            await self.stream.close()
        self.history_chart.destroy()
        self.live_chart.destroy()

    def _on_search_change(self, search: SymbolSearch):
        self.status['symbols'] = SourceStatus(
            loading=search.loading,
            loaded=bool(search.catalog),
            error=search.error,
        )
        self._changed()

    def set_search_term(self, term: str):
        self.search.set_term(term)

    async def select_symbol(self, symbol: str):
        """Switch symbol: reset panel, refetch every source, resubscribe the stream"""
        if not isinstance(symbol, str) or not symbol.strip():
            raise ValueError("symbol must be a non-empty ticker string")
        symbol = symbol.strip().upper()

        self._selection += 1
        token = self._selection
        self.selected_symbol = symbol
        self.panel = Panel.KPI
        self.search.cancel_pending()

        self.historicals = []
        self.ratios = {}
        self.kpis = {}
        self.news = []
        self.history_chart.render([], symbol=symbol)
        self.live_chart.render([], symbol=symbol)

        sources = ['historical', 'ratios', 'kpis']
        if self.options.news:
            sources.append('news')
        for source in sources:
            self.status[source] = SourceStatus(loading=True)
        print(f"[VIEW] Selected {symbol}")
        self._changed()

        jobs = [
            self._load('historical', symbol, token, self.gateway.get_historical_prices, self._commit_historical),
            self._load('ratios', symbol, token, self.gateway.get_ratios, self._commit_ratios),
            self._load('kpis', symbol, token, self.gateway.get_kpis, self._commit_kpis),
        ]
        if self.options.news:
            jobs.append(self._load('news', symbol, token, self.gateway.get_news, self._commit_news))
        if self.stream is not None:
            jobs.append(self.stream.subscribe(symbol))
        await asyncio.gather(*jobs)

    def is_current(self, token: int) -> bool:
        return token == self._selection

    async def _load(self, source: str, symbol: str, token: int, fetch, commit):
        result = await fetch(symbol)
        if not self.is_current(token):
            print(f"[VIEW] Discarding stale {source} for {symbol}")
            return

        commit(symbol, result.data)
        error = str(result.error) if result.error else None
        self.status[source] = SourceStatus(loading=False, loaded=bool(result.data), error=error)
        if error:
            self._add_notice(source, error)
        self._changed()

    def _commit_historical(self, symbol: str, data: list):
        self.historicals = list(data)
        self.history_chart.render(self.historicals, symbol=symbol)

    def _commit_ratios(self, symbol: str, data: dict):
        self.ratios = dict(data)

    def _commit_kpis(self, symbol: str, data: dict):
        self.kpis = dict(data)

    def _commit_news(self, symbol: str, data: list):
        self.news = list(data)

    def _on_stream_update(self, stream: LiveQuoteStream):
        if stream.symbol is not None and stream.symbol != self.selected_symbol:
            return
        self.status['stream'] = SourceStatus(
            loading=stream.loading,
            loaded=stream.price is not None,
            error=stream.error.message if stream.error else None,
        )
        self.live_chart.render(stream.ticks, symbol=stream.symbol or '')
        self._changed()

    def set_panel(self, panel: str):
        self.panel = Panel(panel)
        self._changed()

    def set_dark_mode(self, dark: bool):
        self.dark_mode = bool(dark)
        self.history_chart.set_theme(self.dark_mode)
        self.live_chart.set_theme(self.dark_mode)
        self._changed()

    def set_chart_type(self, chart_type: str):
        if chart_type not in CHART_TYPES:
            raise ValueError(f"Unsupported chart type: {chart_type}")
        self.chart_type = chart_type
        self.history_chart.set_chart_type(chart_type)
        self.live_chart.set_chart_type(chart_type)
        self._changed()

    def dismiss_notice(self, notice_id: int):
        self.notices = [n for n in self.notices if n.id != notice_id]
        self._changed()

    def snapshot(self) -> dict:
        return {
            'symbol': self.selected_symbol,
            'panel': self.panel.value,
            'dark_mode': self.dark_mode,
            'chart_type': self.chart_type,
            'options': {'live_ticker': self.options.live_ticker, 'news': self.options.news},
            'status': {source: s.to_dict() for source, s in self.status.items()},
            'notices': [n.to_dict() for n in self.notices],
            'search': self.search.to_dict(),
            'historical': [p.to_dict() for p in self.historicals],
            'kpis': metric_rows(self.kpis),
            'ratios': metric_rows(self.ratios),
            'news': [a.to_dict() for a in self.news],
            'live': self.stream.to_dict() if self.stream is not None else None,
            'charts': {
                'historical': self.history_chart.to_json(),
                'live': self.live_chart.to_json(),
            },
        }
