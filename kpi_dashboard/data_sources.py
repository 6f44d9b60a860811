"""
Data Sources - REST gateway for the market data providers
Symbol catalog, historical prices, ratios and KPIs come from FMP, news from Finnhub.
Every call hits the network fresh; failures come back as empty defaults plus FetchFailed.
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Generic, Optional, TypeVar
from urllib.parse import quote

import aiohttp
import orjson
import pandas as pd

from .config import FINNHUB_BASE_URL, FMP_BASE_URL, DashboardConfig
from .errors import FetchFailed

T = TypeVar('T')


@dataclass(frozen=True)
class Symbol:
    """Catalog entry, keyed by ticker"""
    symbol: str
    name: str = ''

    def to_dict(self) -> dict:
        return {'symbol': self.symbol, 'name': self.name}


@dataclass
class PricePoint:
    """Single daily price"""
    date: datetime
    open: float
    close: float

    def to_dict(self) -> dict:
        return {
            'date': self.date.strftime('%Y-%m-%d'),
            'open': self.open,
            'close': self.close
        }


@dataclass
class Tick:
    """Single live trade price"""
    time: datetime
    price: float

    def to_dict(self) -> dict:
        return {
            'time': self.time.isoformat(),
            'price': self.price
        }


@dataclass
class NewsArticle:
    id: Any
    headline: str
    url: str
    datetime: Optional[datetime] = None
    source: str = ''
    summary: str = ''
    image: Optional[str] = None

    @classmethod
    def from_payload(cls, item: dict) -> 'NewsArticle':
        published = item.get('datetime')
        if (isinstance(published, (int, float)) and not isinstance(published, bool)
                and math.isfinite(published)):
            try:
                published = datetime.fromtimestamp(published, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                published = None
        else:
            published = None
        return cls(
            id=item.get('id'),
            headline=item.get('headline') or '',
            url=item.get('url') or '',
            datetime=published,
            source=item.get('source') or '',
            summary=item.get('summary') or '',
            image=item.get('image') or None,
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'headline': self.headline,
            'url': self.url,
            'datetime': self.datetime.isoformat() if self.datetime else None,
            'source': self.source,
            'summary': self.summary,
            'image': self.image,
        }


@dataclass
class FetchResult(Generic[T]):
    """Gateway return value: data is always usable, error says whether it is a fallback"""
    data: T
    error: Optional[FetchFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TickBuffer:
    """Rolling window of the most recent live ticks"""
    max_ticks: int = 50
    ticks: list = field(default_factory=list)

    def add(self, tick: Tick):
        self.ticks.append(tick)
        while len(self.ticks) > self.max_ticks:
            self.ticks.pop(0)

    def clear(self):
        self.ticks.clear()

    def to_dataframe(self) -> pd.DataFrame:
        if not self.ticks:
            return pd.DataFrame(columns=['time', 'price'])
        return pd.DataFrame([{'time': t.time, 'price': t.price} for t in self.ticks])

    def to_json(self) -> list:
        return [t.to_dict() for t in self.ticks]

    def __len__(self) -> int:
        return len(self.ticks)

    @property
    def last(self) -> Optional[Tick]:
        return self.ticks[-1] if self.ticks else None


def _ticker(symbol: str) -> str:
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValueError("symbol must be a non-empty ticker string")
    return symbol.strip().upper()


def clean_historical(rows) -> list:
    """Provider rows -> PricePoints sorted by date, dropping anything non-finite"""
    if not isinstance(rows, list) or not rows:
        return []
    df = pd.DataFrame([r for r in rows if isinstance(r, dict)])
    if df.empty or 'date' not in df.columns:
        return []
    for col in ('open', 'close'):
        if col not in df.columns:
            df[col] = float('nan')
    df = df[['date', 'open', 'close']].copy()
    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    df['open'] = pd.to_numeric(df['open'], errors='coerce')
    df['close'] = pd.to_numeric(df['close'], errors='coerce')
    df = df.dropna(subset=['date', 'open', 'close'])
    df = df[df['open'].apply(math.isfinite) & df['close'].apply(math.isfinite)]
    df = df.sort_values('date', kind='stable')
    return [
        PricePoint(date=row.date.to_pydatetime(), open=float(row.open), close=float(row.close))
        for row in df.itertuples(index=False)
    ]


class MarketDataGateway:
    """Outbound REST calls for the dashboard panels"""

    def __init__(self, fmp_api_key: str = '', finnhub_api_key: str = '',
                 fmp_base_url: str = FMP_BASE_URL,
                 finnhub_base_url: str = FINNHUB_BASE_URL,
                 timeout: float = 15.0, news_days: int = 7):
        self.fmp_api_key = fmp_api_key
        self.finnhub_api_key = finnhub_api_key
        self.fmp_base_url = fmp_base_url.rstrip('/')
        self.finnhub_base_url = finnhub_base_url.rstrip('/')
        self.timeout = timeout
        self.news_days = news_days

    @classmethod
    def from_config(cls, config: DashboardConfig) -> 'MarketDataGateway':
        return cls(
            fmp_api_key=config.fmp_api_key,
            finnhub_api_key=config.finnhub_api_key,
            fmp_base_url=config.fmp_base_url,
            finnhub_base_url=config.finnhub_base_url,
            timeout=config.request_timeout,
            news_days=config.news_days,
        )

    async def _get_json(self, source: str, url: str, params: dict, message: str):
        """GET and decode JSON. Returns (payload, None) or (None, FetchFailed)."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as resp:
                    if not resp.ok:
                        print(f"[API] {source}: HTTP {resp.status}")
                        return None, FetchFailed(source, message, resp.status)
                    return await resp.json(content_type=None, loads=orjson.loads), None
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            print(f"[API] {source} error: {e!r}")
            return None, FetchFailed(source, message)

    def _fmp_params(self, **extra) -> dict:
        return {**extra, 'apikey': self.fmp_api_key}

    async def get_symbols(self) -> FetchResult:
        payload, error = await self._get_json(
            'symbols', f"{self.fmp_base_url}/stock/list", self._fmp_params(),
            "Failed to fetch stock symbols.")
        if error:
            return FetchResult([], error)
        if not isinstance(payload, list):
            return FetchResult([], FetchFailed('symbols', "Failed to fetch stock symbols."))

        symbols = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            ticker = item.get('symbol')
            if not isinstance(ticker, str) or not ticker:
                continue
            symbols.append(Symbol(symbol=ticker, name=item.get('name') or ''))
        print(f"[API] Loaded {len(symbols)} symbols")
        return FetchResult(symbols)

    async def get_historical_prices(self, symbol: str) -> FetchResult:
        ticker = _ticker(symbol)
        message = "Error fetching historical prices data. Please try again."
        payload, error = await self._get_json(
            'historical', f"{self.fmp_base_url}/historical-price-full/{quote(ticker, safe='')}",
            self._fmp_params(), message)
        if error:
            return FetchResult([], error)
        if not isinstance(payload, dict):
            # FMP answers unknown tickers with an empty object or list
            return FetchResult([])
        historical = payload.get('historical')
        if historical is None:
            return FetchResult([])
        if not isinstance(historical, list):
            return FetchResult([], FetchFailed('historical', "Invalid historical prices data received."))
        return FetchResult(clean_historical(historical))

    async def _first_record(self, source: str, path: str, ticker: str, message: str) -> FetchResult:
        payload, error = await self._get_json(
            source, f"{self.fmp_base_url}/{path}/{quote(ticker, safe='')}",
            self._fmp_params(), message)
        if error:
            return FetchResult({}, error)
        if not isinstance(payload, list):
            # Provider error objects come back as dicts with a 200
            return FetchResult({}, FetchFailed(source, message))
        if not payload or not isinstance(payload[0], dict):
            return FetchResult({})
        return FetchResult(dict(payload[0]))

    async def get_ratios(self, symbol: str) -> FetchResult:
        return await self._first_record(
            'ratios', 'ratios', _ticker(symbol),
            "Error fetching Financial Ratios data. Please try again.")

    async def get_kpis(self, symbol: str) -> FetchResult:
        return await self._first_record(
            'kpis', 'key-metrics', _ticker(symbol),
            "Error fetching KPI data. Please try again.")

    async def get_news(self, symbol: str, from_date: Optional[date] = None,
                       to_date: Optional[date] = None) -> FetchResult:
        ticker = _ticker(symbol)
        to_date = to_date or datetime.now(timezone.utc).date()
        from_date = from_date or (to_date - timedelta(days=self.news_days))
        params = {
            'symbol': ticker,
            'from': from_date.strftime('%Y-%m-%d'),
            'to': to_date.strftime('%Y-%m-%d'),
            'token': self.finnhub_api_key,
        }
        payload, error = await self._get_json(
            'news', f"{self.finnhub_base_url}/company-news", params,
            "Failed to fetch news data")
        if error:
            return FetchResult([], error)
        if not isinstance(payload, list):
            return FetchResult([], FetchFailed('news', "Failed to fetch news data"))
        return FetchResult([NewsArticle.from_payload(item) for item in payload if isinstance(item, dict)])


# Quick test
if __name__ == '__main__':
    async def test_gateway():
        gateway = MarketDataGateway.from_config(DashboardConfig.from_env())
        result = await gateway.get_historical_prices('AAPL')
        print(f"Historical: {len(result.data)} points, ok={result.ok}")
        ratios = await gateway.get_ratios('AAPL')
        print(f"Ratios: {len(ratios.data)} fields, ok={ratios.ok}")

    asyncio.run(test_gateway())
