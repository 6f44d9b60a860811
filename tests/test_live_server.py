"""HTTP and WebSocket surface of the dashboard server."""
import asyncio

import aiohttp
from aiohttp.test_utils import TestClient, TestServer

from kpi_dashboard.config import DashboardConfig
from kpi_dashboard.data_sources import FetchResult, PricePoint, Symbol
from kpi_dashboard.errors import AuthError
from kpi_dashboard.live_server import LiveDashboardServer, json_dumps, json_loads
from kpi_dashboard.session import Authenticator, SessionContext
from kpi_dashboard.view_state import DashboardOptions, DashboardView


class StubAuthenticator(Authenticator):
    async def sign_in(self, email, password):
        if password != 'secret1':
            raise AuthError('Authentication failed: INVALID_PASSWORD')
        return {'email': email}

    async def sign_up(self, email, password):
        return {'email': email}


class StubGateway:
    async def get_symbols(self):
        return FetchResult([Symbol('AAPL', 'Apple'), Symbol('AMZN', 'Amazon')])

    async def get_historical_prices(self, symbol):
        from datetime import datetime
        return FetchResult([PricePoint(datetime(2024, 1, 1), 1.0, 2.0)])

    async def get_ratios(self, symbol):
        return FetchResult({'currentRatio': 1.1})

    async def get_kpis(self, symbol):
        return FetchResult({'roe': 0.2})

    async def get_news(self, symbol):
        return FetchResult([])


def make_server(tmp_path):
    config = DashboardConfig(session_path=tmp_path / 'session.json')
    session = SessionContext(config.session_path, StubAuthenticator())
    factory = lambda: DashboardView(StubGateway(), None, DashboardOptions(live_ticker=False),
                                    debounce_sec=0.01)
    return LiveDashboardServer(config, session=session, view_factory=factory, open_browser=False)


def with_client(tmp_path, scenario):
    server = make_server(tmp_path)

    async def run():
        async with TestClient(TestServer(server.create_app())) as client:
            return await scenario(server, client)

    return asyncio.run(run())


async def login(client, password='secret1'):
    return await client.post('/api/login', data=json_dumps({'email': 'a@b.co', 'password': password}),
                             headers={'Content-Type': 'application/json'})


async def next_state(ws):
    while True:
        msg = await asyncio.wait_for(ws.receive(), timeout=2)
        assert msg.type == aiohttp.WSMsgType.TEXT
        data = json_loads(msg.data)
        if data['type'] == 'state':
            return data['data']


async def drain_until_closed(ws):
    while not ws.closed:
        await ws.receive()
    return ws.close_code


def test_index_shows_login_when_signed_out(tmp_path):
    async def scenario(server, client):
        resp = await client.get('/')
        return resp.status, await resp.text()

    status, body = with_client(tmp_path, scenario)
    assert status == 200
    assert 'id="signin-form"' in body


def test_bad_email_is_400_without_login(tmp_path):
    async def scenario(server, client):
        resp = await client.post('/api/login', json={'email': 'nope', 'password': 'secret1'})
        return resp.status, await resp.json(), server.session.logged_in

    status, body, logged_in = with_client(tmp_path, scenario)
    assert status == 400
    assert body == {'error': 'Invalid email format'}
    assert not logged_in


def test_rejected_password_is_401(tmp_path):
    async def scenario(server, client):
        resp = await login(client, password='wrong-pass')
        return resp.status, await resp.json()

    status, body = with_client(tmp_path, scenario)
    assert status == 401
    assert 'INVALID_PASSWORD' in body['error']


def test_malformed_body_is_400(tmp_path):
    async def scenario(server, client):
        resp = await client.post('/api/login', data='{oops', headers={'Content-Type': 'application/json'})
        return resp.status

    assert with_client(tmp_path, scenario) == 400


def test_login_then_dashboard_page(tmp_path):
    async def scenario(server, client):
        resp = await login(client)
        assert resp.status == 200
        assert await resp.json() == {'ok': True}
        page = await (await client.get('/')).text()
        return page

    page = with_client(tmp_path, scenario)
    assert 'id="symbol-select"' in page
    assert 'plotly' in page.lower()


def test_signup_mismatch_is_400(tmp_path):
    async def scenario(server, client):
        resp = await client.post('/api/signup', json={
            'email': 'a@b.co', 'password': 'secret1', 'confirm_password': 'secret2', 'username': 'u'})
        return resp.status, await resp.json()

    status, body = with_client(tmp_path, scenario)
    assert status == 400
    assert body['error'] == 'Passwords do not match!'


def test_websocket_refused_when_signed_out(tmp_path):
    async def scenario(server, client):
        ws = await client.ws_connect('/ws')
        msg = await asyncio.wait_for(ws.receive(), timeout=2)
        return msg.type, ws.close_code

    kind, code = with_client(tmp_path, scenario)
    assert kind in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED)
    assert code == aiohttp.WSCloseCode.POLICY_VIOLATION


def test_websocket_pushes_state_and_handles_selection(tmp_path):
    async def scenario(server, client):
        await login(client)
        ws = await client.ws_connect('/ws')
        initial = await next_state(ws)

        await ws.send_str(json_dumps({'type': 'select', 'symbol': 'aapl'}))
        for _ in range(20):
            state = await next_state(ws)
            if state['symbol'] == 'AAPL' and not state['status']['kpis']['loading']:
                break
        await ws.send_str(json_dumps({'type': 'panel', 'panel': 'ratios'}))
        for _ in range(20):
            later = await next_state(ws)
            if later['panel'] == 'ratios':
                break
        await ws.close()
        return initial, state, later

    initial, state, later = with_client(tmp_path, scenario)
    assert initial['symbol'] is None
    assert initial['panel'] == 'graph'
    assert state['symbol'] == 'AAPL'
    assert state['panel'] == 'kpi'
    assert state['kpis'] == [{'key': 'roe', 'label': 'Roe', 'value': 0.2}]
    assert state['charts']['historical'] is not None
    assert later['panel'] == 'ratios'


def test_bad_client_messages_are_ignored(tmp_path):
    async def scenario(server, client):
        await login(client)
        ws = await client.ws_connect('/ws')
        await next_state(ws)
        await ws.send_str('not json')
        await ws.send_str(json_dumps({'type': 'panel', 'panel': 'nope'}))
        await ws.send_str(json_dumps({'type': 'dismiss', 'id': 'x'}))
        await ws.send_str(json_dumps({'type': 'theme', 'dark': True}))
        for _ in range(20):
            state = await next_state(ws)
            if state['dark_mode']:
                break
        await ws.close()
        return state

    state = with_client(tmp_path, scenario)
    assert state['dark_mode'] is True
    assert state['panel'] == 'graph'


def test_theme_needs_a_real_boolean(tmp_path):
    async def scenario(server, client):
        await login(client)
        ws = await client.ws_connect('/ws')
        await next_state(ws)
        await ws.send_str(json_dumps({'type': 'theme', 'dark': 'false'}))
        await ws.send_str(json_dumps({'type': 'theme', 'dark': 1}))
        # messages are handled in order, so the chart type change lands last
        await ws.send_str(json_dumps({'type': 'chart_type', 'chart_type': 'bar'}))
        for _ in range(20):
            state = await next_state(ws)
            if state['chart_type'] == 'bar':
                break
        await ws.close()
        return state

    state = with_client(tmp_path, scenario)
    assert state['chart_type'] == 'bar'
    assert state['dark_mode'] is False


def test_logout_unmounts_view(tmp_path):
    async def scenario(server, client):
        await login(client)
        ws = await client.ws_connect('/ws')
        await next_state(ws)
        assert server.view is not None
        drain = asyncio.create_task(drain_until_closed(ws))

        resp = await client.post('/api/logout')
        assert resp.status == 200
        assert await asyncio.wait_for(drain, timeout=2) == aiohttp.WSCloseCode.GOING_AWAY
        page = await (await client.get('/')).text()
        return server, page

    server, page = with_client(tmp_path, scenario)
    assert server.view is None
    assert not server.session.logged_in
    assert 'id="signin-form"' in page
