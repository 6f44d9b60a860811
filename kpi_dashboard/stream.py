"""
Live quote stream - one WebSocket per selected symbol
Keeps a rolling window of the latest trade prices for the live chart
"""

import asyncio
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import orjson
import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK, WebSocketException

from .data_sources import Tick, TickBuffer
from .errors import StreamClosedUnexpectedly, StreamError


class StreamState(str, Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    SUBSCRIBED = 'subscribed'
    ERROR = 'error'


def _is_valid_price(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LiveQuoteStream:
    """Owns the single streaming connection and its tick buffer.

    Symbol changes always go unsubscribe(old) -> close(old) -> open(new).
    Every connection is tagged with a generation number; a reader whose
    generation is no longer current never touches state, so a released
    connection cannot deliver ticks.
    """

    CAPACITY = 50

    def __init__(self, url: str, capacity: int = CAPACITY,
                 connect: Callable = websockets.connect,
                 on_update: Optional[Callable[['LiveQuoteStream'], None]] = None,
                 clock: Callable[[], datetime] = _utc_now):
        self.url = url
        self.buffer = TickBuffer(max_ticks=capacity)
        self.on_update = on_update
        self._connect = connect
        self._clock = clock

        self.state = StreamState.DISCONNECTED
        self.symbol: Optional[str] = None
        self.price: Optional[float] = None
        self.error: Optional[StreamError] = None
        self.loading = False

        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._requested: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def ticks(self) -> list:
        return list(self.buffer.ticks)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def _notify(self):
        if self.on_update:
            self.on_update(self)

    def _set_state(self, state: StreamState):
        if state != self.state:
            print(f"[STREAM] {self.symbol or '-'}: {self.state.value} -> {state.value}")
        self.state = state
        self._notify()

    def _fail(self, error: StreamError, cause: Exception):
        print(f"[STREAM] {self.symbol}: {error.message} ({cause!r})")
        self._ws = None
        self.error = error
        self.loading = False
        self._set_state(StreamState.ERROR)

    async def subscribe(self, symbol: str):
        """Point the stream at symbol; re-selecting the current symbol is a no-op"""
        if not isinstance(symbol, str) or not symbol.strip():
            raise ValueError("symbol must be a non-empty ticker string")
        symbol = symbol.strip().upper()
        self._requested = symbol

        async with self._lock:
            if self._requested != symbol:
                # A newer selection arrived while we waited
                return
            if symbol == self.symbol and self.state in (StreamState.CONNECTING, StreamState.SUBSCRIBED):
                return
            await self._release()
            self._open(symbol)

    async def close(self):
        """Unmount: unsubscribe if open, then close"""
        self._requested = None
        async with self._lock:
            await self._release()
            self.symbol = None
            self.loading = False
            self._set_state(StreamState.DISCONNECTED)

    def _open(self, symbol: str):
        self._generation += 1
        self.symbol = symbol
        self.buffer.clear()
        self.price = None
        self.error = None
        self.loading = True
        self._set_state(StreamState.CONNECTING)
        self._task = asyncio.create_task(self._run(symbol, self._generation))

    async def _release(self):
        ws, task = self._ws, self._task
        subscribed = self.state == StreamState.SUBSCRIBED
        old_symbol = self.symbol
        self._generation += 1
        self._ws = None
        self._task = None

        if ws is not None:
            if subscribed:
                try:
                    await ws.send(self._frame('unsubscribe', old_symbol))
                except (ConnectionClosed, OSError) as e:
                    print(f"[STREAM] {old_symbol}: unsubscribe skipped ({e!r})")
            await ws.close()
            print(f"[STREAM] {old_symbol}: connection released")

        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    @staticmethod
    def _frame(kind: str, symbol: str) -> str:
        return orjson.dumps({'type': kind, 'symbol': symbol}).decode('utf-8')

    async def _run(self, symbol: str, generation: int):
        try:
            ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            if generation == self._generation:
                self._fail(StreamError(), e)
            return

        if generation != self._generation:
            await ws.close()
            return
        self._ws = ws

        try:
            await ws.send(self._frame('subscribe', symbol))
            self.loading = False
            self.error = None
            self._set_state(StreamState.SUBSCRIBED)

            async for raw in ws:
                if generation != self._generation:
                    return
                self._handle_message(raw)
        except ConnectionClosedError as e:
            if generation == self._generation:
                self._fail(StreamClosedUnexpectedly(), e)
            return
        except ConnectionClosedOK:
            pass
        except (OSError, WebSocketException) as e:
            if generation == self._generation:
                self._fail(StreamError(), e)
            return

        if generation == self._generation:
            # Server closed cleanly
            self._ws = None
            self.loading = False
            self._set_state(StreamState.DISCONNECTED)

    def _handle_message(self, raw):
        try:
            message = orjson.loads(raw)
        except orjson.JSONDecodeError:
            print(f"[STREAM] {self.symbol}: skipping malformed frame")
            return
        if not isinstance(message, dict) or message.get('type') != 'trade':
            return
        data = message.get('data')
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return

        latest = data[0]
        if latest.get('s') not in (None, self.symbol):
            return
        price = latest.get('p')
        if not _is_valid_price(price):
            return

        tick = Tick(time=self._clock(), price=float(price))
        self.buffer.add(tick)
        self.price = tick.price
        self._notify()

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'symbol': self.symbol,
            'price': self.price,
            'loading': self.loading,
            'error': self.error.message if self.error else None,
            'ticks': self.buffer.to_json(),
        }
