"""
Live WebSocket Server for the Stock Dashboard
Serves the login/dashboard pages, handles sign-in, and pushes view state to the browser
"""

import asyncio
import webbrowser
from typing import Callable, Optional

import aiohttp
import orjson
from aiohttp import WSCloseCode, web

from .config import DashboardConfig
from .dashboard import DashboardGenerator
from .errors import AuthError, CredentialError
from .session import SessionContext
from .view_state import DashboardView


def json_dumps(data) -> str:
    return orjson.dumps(data).decode('utf-8')


def json_loads(data):
    return orjson.loads(data)


class LiveDashboardServer:
    """aiohttp app that owns the session and the mounted dashboard view"""

    PUSH_WINDOW = 0.05  # coalesce state pushes (ticks arrive in bursts)

    def __init__(self, config: Optional[DashboardConfig] = None,
                 session: Optional[SessionContext] = None,
                 view_factory: Optional[Callable[[], DashboardView]] = None,
                 open_browser: bool = True):
        self.config = config or DashboardConfig()
        self.host = self.config.host
        self.port = self.config.port
        self.open_browser = open_browser
        self.session = session or SessionContext.from_config(self.config)
        self.view_factory = view_factory or (lambda: DashboardView.from_config(self.config))
        self.generator = DashboardGenerator()

        self.clients = set()
        self.running = False
        self.view: Optional[DashboardView] = None

        self._push_task: Optional[asyncio.Task] = None
        self._tasks = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            print(f"[SERVER] Background task failed: {task.exception()!r}")

    async def _mount(self) -> DashboardView:
        """Create the dashboard view on first use after sign-in"""
        if self.view is None:
            self.view = self.view_factory()
            self.view.on_change = self._queue_push
            self._spawn(self.view.start())
            print("[SERVER] Dashboard mounted")
        return self.view

    async def _unmount(self):
        if self.view is not None:
            view, self.view = self.view, None
            await view.close()
            print("[SERVER] Dashboard unmounted")

    async def _broadcast(self, data: dict):
        """Send data to all connected clients"""
        if not self.clients:
            return
        message = json_dumps(data)
        for client in list(self.clients):
            try:
                await client.send_str(message)
            except (ConnectionResetError, RuntimeError):
                self.clients.discard(client)

    def _queue_push(self, view: DashboardView):
        """Schedule one state push per window, however many changes land in it"""
        if self._push_task is None or self._push_task.done():
            self._push_task = asyncio.create_task(self._flush_push())

    async def _flush_push(self):
        await asyncio.sleep(self.PUSH_WINDOW)
        if self.view is not None:
            await self._broadcast({'type': 'state', 'data': self.view.snapshot()})

    async def _handle_client_message(self, raw: str):
        try:
            msg = json_loads(raw)
        except orjson.JSONDecodeError:
            print("[WS] Ignoring malformed message")
            return
        if not isinstance(msg, dict) or self.view is None:
            return

        view = self.view
        kind = msg.get('type')
        try:
            if kind == 'search':
                view.set_search_term(str(msg.get('term') or ''))
            elif kind == 'select':
                self._spawn(view.select_symbol(str(msg.get('symbol') or '')))
            elif kind == 'panel':
                view.set_panel(str(msg.get('panel')))
            elif kind == 'theme':
                view.set_dark_mode(msg.get('dark') is True)
            elif kind == 'chart_type':
                view.set_chart_type(str(msg.get('chart_type')))
            elif kind == 'dismiss':
                view.dismiss_notice(int(msg.get('id')))
        except (ValueError, TypeError) as e:
            print(f"[WS] Ignoring {kind} message: {e}")

    async def websocket_handler(self, request):
        """Handle WebSocket connections"""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        if not self.session.logged_in:
            await ws.close(code=WSCloseCode.POLICY_VIOLATION, message=b'login required')
            return ws

        view = await self._mount()
        self.clients.add(ws)
        print(f"[WS] Client connected ({len(self.clients)} total)")

        await ws.send_str(json_dumps({'type': 'state', 'data': view.snapshot()}))

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_client_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    print(f"[WS] Error: {ws.exception()}")
        finally:
            self.clients.discard(ws)
            print(f"[WS] Client disconnected ({len(self.clients)} total)")

        return ws

    async def index_handler(self, request):
        """Serve the dashboard, or the login page when signed out"""
        if self.session.logged_in:
            page = self.generator.generate_dashboard(
                dark_mode=self.config.dark_mode,
                live_ticker=self.config.live_ticker,
                news=self.config.news,
            )
        else:
            page = self.generator.generate_login()
        return web.Response(text=page, content_type='text/html')

    async def _read_body(self, request) -> dict:
        try:
            body = await request.json(loads=json_loads)
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _error(message: str, status: int):
        return web.json_response({'error': message}, status=status, dumps=json_dumps)

    async def login_handler(self, request):
        body = await self._read_body(request)
        try:
            await self.session.sign_in(body.get('email', ''), body.get('password', ''))
        except CredentialError as e:
            return self._error(str(e), 400)
        except AuthError as e:
            return self._error(str(e), 401)
        return web.json_response({'ok': True}, dumps=json_dumps)

    async def signup_handler(self, request):
        body = await self._read_body(request)
        try:
            await self.session.sign_up(
                body.get('email', ''), body.get('password', ''),
                body.get('confirm_password', ''), body.get('username', ''))
        except CredentialError as e:
            return self._error(str(e), 400)
        except AuthError as e:
            return self._error(str(e), 401)
        return web.json_response({'ok': True}, dumps=json_dumps)

    async def logout_handler(self, request):
        self.session.logout()
        for client in list(self.clients):
            await client.close(code=WSCloseCode.GOING_AWAY, message=b'logged out')
        self.clients.clear()
        await self._unmount()
        return web.json_response({'ok': True}, dumps=json_dumps)

    async def _on_cleanup(self, app):
        if self._push_task is not None:
            self._push_task.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self._unmount()

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/', self.index_handler)
        app.router.add_get('/ws', self.websocket_handler)
        app.router.add_post('/api/login', self.login_handler)
        app.router.add_post('/api/signup', self.signup_handler)
        app.router.add_post('/api/logout', self.logout_handler)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def run(self):
        """Start the server"""
        print("=" * 60)
        print("STOCK DASHBOARD")
        print("=" * 60)

        if not self.config.fmp_api_key:
            print("[WARN] FMP_API_KEY not set - REST panels will show errors")
        if self.config.live_ticker and not self.config.finnhub_api_key:
            print("[WARN] FINNHUB_API_KEY not set - live ticker will not connect")

        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()

        print(f"\n[SERVER] Dashboard: http://{self.host}:{self.port}")
        print("[SERVER] Press Ctrl+C to stop\n")

        if self.open_browser:
            webbrowser.open(f'http://{self.host}:{self.port}')

        self.running = True
        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            self.running = False
            await runner.cleanup()
            print("[OK] Shutdown complete")


async def main():
    server = LiveDashboardServer(DashboardConfig.from_env())
    await server.run()


if __name__ == '__main__':
    asyncio.run(main())
