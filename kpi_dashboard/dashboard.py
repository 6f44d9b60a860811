"""
Dashboard page generator
Login page plus the live dashboard page; the dashboard is a thin view over /ws state pushes
"""

import html


class DashboardGenerator:
    """Generate the HTML pages served by the live server"""

    PLOTLY_JS = "https://cdn.plot.ly/plotly-2.35.2.min.js"

    BASE_CSS = '''
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #f0f0f0;
            color: #000;
        }}
        body.dark-mode {{ background: #303030; color: #fff; }}
        .header {{
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding: 12px 20px;
            background: #1976d2;
            color: #fff;
        }}
        .header h1 {{ font-size: 20px; font-weight: 500; }}
        button {{ cursor: pointer; padding: 6px 12px; border-radius: 4px; border: 1px solid #ccc; }}
        input, select {{ width: 100%; padding: 8px; margin: 6px 0; border: 1px solid #ccc; border-radius: 4px; }}
        body.dark-mode input, body.dark-mode select {{ background: #424242; color: #fff; }}
        .error {{ color: #ef5350; margin: 8px 0; }}
    '''

    LOGIN_TEMPLATE = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{title} - Sign in</title>
    <style>
        {base_css}
        .card {{
            max-width: 380px;
            margin: 80px auto;
            padding: 30px;
            background: #fff;
            border-radius: 8px;
            box-shadow: 0 4px 15px rgba(0, 0, 0, 0.2);
        }}
        .card h2 {{ margin-bottom: 12px; }}
        .tabs {{ display: flex; gap: 8px; margin-bottom: 12px; }}
        .hidden {{ display: none; }}
    </style>
</head>
<body>
    <div class="card">
        <h2>{title}</h2>
        <div class="tabs">
            <button id="show-signin">Sign in</button>
            <button id="show-signup">Sign up</button>
        </div>
        <form id="signin-form">
            <input type="email" id="signin-email" placeholder="Email">
            <input type="password" id="signin-password" placeholder="Password">
            <button type="submit">Sign in</button>
        </form>
        <form id="signup-form" class="hidden">
            <input type="text" id="signup-username" placeholder="Username">
            <input type="email" id="signup-email" placeholder="Email">
            <input type="password" id="signup-password" placeholder="Password">
            <input type="password" id="signup-confirm" placeholder="Confirm password">
            <button type="submit">Sign up</button>
        </form>
        <div id="message" class="error"></div>
    </div>
    <script>
        const message = document.getElementById('message');
        const signin = document.getElementById('signin-form');
        const signup = document.getElementById('signup-form');
        document.getElementById('show-signin').onclick = () => {{
            signin.classList.remove('hidden'); signup.classList.add('hidden');
        }};
        document.getElementById('show-signup').onclick = () => {{
            signup.classList.remove('hidden'); signin.classList.add('hidden');
        }};

        async function post(url, body) {{
            const resp = await fetch(url, {{
                method: 'POST',
                headers: {{ 'Content-Type': 'application/json' }},
                body: JSON.stringify(body)
            }});
            const data = await resp.json();
            if (!resp.ok) throw new Error(data.error || 'Request failed');
            return data;
        }}

        signin.onsubmit = async (e) => {{
            e.preventDefault();
            try {{
                await post('/api/login', {{
                    email: document.getElementById('signin-email').value,
                    password: document.getElementById('signin-password').value
                }});
                window.location.reload();
            }} catch (err) {{
                message.textContent = err.message;
            }}
        }};

        signup.onsubmit = async (e) => {{
            e.preventDefault();
            try {{
                await post('/api/signup', {{
                    username: document.getElementById('signup-username').value,
                    email: document.getElementById('signup-email').value,
                    password: document.getElementById('signup-password').value,
                    confirm_password: document.getElementById('signup-confirm').value
                }});
                message.textContent = 'Account created. Please sign in.';
                document.getElementById('show-signin').click();
            }} catch (err) {{
                message.textContent = err.message;
            }}
        }};
    </script>
</body>
</html>'''

    DASHBOARD_TEMPLATE = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <script src="{plotly_js}"></script>
    <style>
        {base_css}
        .layout {{ display: flex; gap: 20px; padding: 20px; }}
        .sidebar {{ flex: 1; min-width: 240px; border-right: 1px solid #ccc; padding-right: 20px; }}
        .content {{ flex: 2; }}
        .panel-btn {{
            display: block;
            width: 100%;
            padding: 24px;
            margin-bottom: 10px;
            font-size: 18px;
            background: #fff;
        }}
        .panel-btn.active {{ background: #e0f7fa; }}
        body.dark-mode .panel-btn {{ background: #424242; color: #fff; }}
        body.dark-mode .panel-btn.active {{ background: #78909c; }}
        .box {{
            border: 1px solid #ddd;
            box-shadow: 0 4px 15px rgba(0, 0, 0, 0.2);
            padding: 15px;
            margin-bottom: 20px;
            background: #fff;
        }}
        body.dark-mode .box {{ background: #424242; }}
        .metric {{ display: flex; justify-content: space-between; padding: 4px 0; border-bottom: 1px solid #eee; }}
        .notice {{
            display: flex; justify-content: space-between; align-items: center;
            background: #ef5350; color: #fff; padding: 8px 12px; margin-bottom: 8px; border-radius: 4px;
        }}
        .spinner {{ color: #787b86; font-style: italic; margin: 6px 0; }}
        .chart {{ height: 380px; }}
        .price {{ font-size: 22px; font-weight: 600; margin-bottom: 10px; font-family: 'SF Mono', monospace; }}
        .article {{ margin-bottom: 12px; }}
        .article img {{ max-width: 100%; max-height: 200px; object-fit: cover; }}
        .article .meta {{ font-size: 12px; color: #787b86; margin: 4px 0; }}
        .hidden {{ display: none; }}
    </style>
</head>
<body class="{body_class}">
    <div class="header">
        <h1>{title}</h1>
        <div>
            <label><input type="checkbox" id="theme-toggle" style="width:auto" {dark_checked}> Dark mode</label>
            <select id="chart-type" style="width:auto">
                <option value="line">Line</option>
                <option value="bar">Bar</option>
            </select>
            <button id="logout">Logout</button>
        </div>
    </div>
    <div class="layout">
        <div class="sidebar">
            <input id="search" placeholder="Search Symbol" autocomplete="off">
            <select id="symbol-select"></select>
            <div id="search-status" class="spinner"></div>
            <div id="notices"></div>
            <button class="panel-btn" data-panel="kpi">KPI Data</button>
            <button class="panel-btn" data-panel="ratios">Financial Ratios</button>
            <button class="panel-btn" data-panel="graph">Graphical Analysis</button>
        </div>
        <div class="content">
            <div id="panel-kpi" class="box hidden"></div>
            <div id="panel-ratios" class="box hidden"></div>
            <div id="panel-graph" class="box hidden"><div id="historical-chart" class="chart"></div></div>
            <div id="live-box" class="box {live_class}">
                <div id="live-price" class="price"></div>
                <div id="live-chart" class="chart"></div>
            </div>
            <div id="news-box" class="box {news_class}"></div>
        </div>
    </div>
    <script>
        let ws = null;
        let state = null;

        function send(msg) {{
            if (ws && ws.readyState === WebSocket.OPEN) ws.send(JSON.stringify(msg));
        }}

        function el(tag, text, cls) {{
            const node = document.createElement(tag);
            if (text !== undefined && text !== null) node.textContent = text;
            if (cls) node.className = cls;
            return node;
        }}

        function drawChart(id, figJson) {{
            const node = document.getElementById(id);
            if (!figJson) {{ Plotly.purge(node); return; }}
            const fig = JSON.parse(figJson);
            Plotly.react(node, fig.data, fig.layout, {{ responsive: true }});
        }}

        function renderMetrics(id, title, rows, status) {{
            const box = document.getElementById(id);
            box.replaceChildren(el('h3', title));
            if (status.loading) {{ box.append(el('div', 'Loading...', 'spinner')); return; }}
            if (!rows.length) {{ box.append(el('div', 'No data available.')); return; }}
            rows.forEach(r => {{
                const row = el('div', null, 'metric');
                row.append(el('span', r.label), el('span', String(r.value)));
                box.append(row);
            }});
        }}

        function renderNews(s) {{
            const box = document.getElementById('news-box');
            box.replaceChildren(el('h3', 'Company News'));
            const status = s.status.news;
            if (status.loading) {{ box.append(el('div', 'Loading news...', 'spinner')); return; }}
            if (status.error) {{ box.append(el('div', status.error, 'error')); return; }}
            if (!s.news.length) {{ box.append(el('div', 'No news available for this company.')); return; }}
            s.news.forEach(a => {{
                const item = el('div', null, 'article');
                if (a.image) {{ const img = el('img'); img.src = a.image; img.alt = a.headline; item.append(img); }}
                const link = el('a', a.headline); link.href = a.url; link.target = '_blank'; link.rel = 'noopener';
                const when = a.datetime ? new Date(a.datetime).toLocaleString() : '';
                const heading = el('h4');
                heading.append(link);
                item.append(heading, el('div', when + ' | ' + a.source, 'meta'), el('div', a.summary));
                box.append(item);
            }});
        }}

        function render(s) {{
            state = s;
            document.body.className = s.dark_mode ? 'dark-mode' : 'light-mode';
            document.getElementById('theme-toggle').checked = s.dark_mode;
            document.getElementById('chart-type').value = s.chart_type;

            const select = document.getElementById('symbol-select');
            select.replaceChildren(el('option', 'Select Stock Symbol'));
            s.search.symbols.forEach(sym => {{
                const opt = el('option', sym.symbol);
                opt.value = sym.symbol;
                select.append(opt);
            }});
            if (s.symbol) select.value = s.symbol;

            const searchStatus = document.getElementById('search-status');
            searchStatus.textContent = s.search.state === 'loading' ? 'Loading symbols...' :
                (s.search.error || (s.search.matches + ' of ' + s.search.total + ' symbols'));

            const notices = document.getElementById('notices');
            notices.replaceChildren();
            s.notices.forEach(n => {{
                const box = el('div', null, 'notice');
                const close = el('button', 'x');
                close.onclick = () => send({{ type: 'dismiss', id: n.id }});
                box.append(el('span', n.message), close);
                notices.append(box);
            }});

            document.querySelectorAll('.panel-btn').forEach(b => {{
                b.classList.toggle('active', b.dataset.panel === s.panel);
            }});
            ['kpi', 'ratios', 'graph'].forEach(p => {{
                document.getElementById('panel-' + p).classList.toggle('hidden', !s.symbol || p !== s.panel);
            }});

            renderMetrics('panel-kpi', 'KPI Data', s.kpis, s.status.kpis);
            renderMetrics('panel-ratios', 'Financial Ratios', s.ratios, s.status.ratios);
            drawChart('historical-chart', s.charts.historical);

            if (s.live) {{
                const live = document.getElementById('live-price');
                if (s.live.error) live.textContent = s.live.error;
                else if (s.live.loading) live.textContent = 'Connecting...';
                else live.textContent = 'Current Price : ' + (s.live.price != null ? '$' + s.live.price.toFixed(4) : 'No data');
                drawChart('live-chart', s.charts.live);
            }}
            if (s.options.news && s.symbol) renderNews(s);
        }}

        function connect() {{
            ws = new WebSocket((location.protocol === 'https:' ? 'wss://' : 'ws://') + location.host + '/ws');
            ws.onmessage = (event) => {{
                const msg = JSON.parse(event.data);
                if (msg.type === 'state') render(msg.data);
            }};
            ws.onclose = () => setTimeout(connect, 1000);
        }}

        document.getElementById('search').addEventListener('input', (e) => send({{ type: 'search', term: e.target.value }}));
        document.getElementById('symbol-select').addEventListener('change', (e) => {{
            if (e.target.value) send({{ type: 'select', symbol: e.target.value }});
        }});
        document.querySelectorAll('.panel-btn').forEach(b => {{
            b.addEventListener('click', () => send({{ type: 'panel', panel: b.dataset.panel }}));
        }});
        document.getElementById('theme-toggle').addEventListener('change', (e) => send({{ type: 'theme', dark: e.target.checked }}));
        document.getElementById('chart-type').addEventListener('change', (e) => send({{ type: 'chart_type', chart_type: e.target.value }}));
        document.getElementById('logout').addEventListener('click', async () => {{
            await fetch('/api/logout', {{ method: 'POST' }});
            window.location.reload();
        }});

        connect();
    </script>
</body>
</html>'''

    def __init__(self, title: str = 'Stock Dashboard'):
        self.title = title

    def _base_css(self) -> str:
        # BASE_CSS is itself a format template with doubled braces
        return self.BASE_CSS.format()

    def generate_login(self) -> str:
        return self.LOGIN_TEMPLATE.format(
            title=html.escape(self.title),
            base_css=self._base_css(),
        )

    def generate_dashboard(self, dark_mode: bool = False, live_ticker: bool = True, news: bool = True) -> str:
        return self.DASHBOARD_TEMPLATE.format(
            title=html.escape(self.title),
            plotly_js=self.PLOTLY_JS,
            base_css=self._base_css(),
            body_class='dark-mode' if dark_mode else 'light-mode',
            dark_checked='checked' if dark_mode else '',
            live_class='' if live_ticker else 'hidden',
            news_class='' if news else 'hidden',
        )
