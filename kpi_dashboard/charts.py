"""
Chart lifecycle - exactly one plotly figure per canvas
The previous handle is always destroyed before the next one is built.
"""

from typing import Optional

import plotly.graph_objects as go

CHART_TYPES = ('line', 'bar')

OPEN_COLOR = 'rgba(75, 192, 192, 1)'
OPEN_FILL = 'rgba(75, 192, 192, 0.2)'
CLOSE_COLOR = 'rgba(255, 99, 132, 1)'
CLOSE_FILL = 'rgba(255, 99, 132, 0.2)'
LIVE_COLOR = '#1976d2'

THEMES = {
    'light': {
        'template': 'plotly_white',
        'bg': '#ffffff',
        'text': '#000000',
        'grid': '#e0e0e0',
        'tooltip_bg': '#b9e6e3',
    },
    'dark': {
        'template': 'plotly_dark',
        'bg': '#303030',
        'text': '#d1d4dc',
        'grid': '#363c4e',
        'tooltip_bg': '#424242',
    },
}


class ChartCanvas:
    """Drawing surface; remembers every handle bound to it"""

    def __init__(self, name: str):
        self.name = name
        self.handles: list = []

    def attach(self, handle: 'ChartHandle'):
        self.handles.append(handle)

    def detach(self, handle: 'ChartHandle'):
        if handle in self.handles:
            self.handles.remove(handle)

    @property
    def live_handles(self) -> list:
        return [h for h in self.handles if not h.destroyed]


class ChartHandle:
    """One constructed figure, bound to a canvas until destroyed"""

    def __init__(self, canvas: ChartCanvas, figure: go.Figure):
        self.canvas = canvas
        self.figure: Optional[go.Figure] = figure
        self.destroyed = False
        canvas.attach(self)

    def destroy(self):
        if self.destroyed:
            return
        self.canvas.detach(self)
        self.figure = None
        self.destroyed = True

    def to_json(self) -> Optional[str]:
        if self.figure is None:
            return None
        return self.figure.to_json()


def _trace(kind: str, x, y, name: str, color: str, fill: str):
    if kind == 'bar':
        return go.Bar(x=x, y=y, name=name, marker_color=fill, marker_line_color=color,
                      marker_line_width=1)
    return go.Scatter(x=x, y=y, name=name, mode='lines+markers',
                      line=dict(color=color, shape='spline', smoothing=0.3),
                      marker=dict(size=3))


def _apply_theme(fig: go.Figure, dark: bool, x_title: str, y_title: str):
    theme = THEMES['dark' if dark else 'light']
    fig.update_layout(
        template=theme['template'],
        plot_bgcolor=theme['bg'],
        paper_bgcolor=theme['bg'],
        font=dict(color=theme['text']),
        hoverlabel=dict(bgcolor=theme['tooltip_bg'], font=dict(color=theme['text'])),
        margin=dict(l=50, r=30, t=40, b=40),
        legend=dict(orientation='h', y=1.1),
        hovermode='x unified',
    )
    fig.update_xaxes(title_text=x_title, showgrid=True, gridcolor=theme['grid'],
                     linecolor=theme['text'], tickfont=dict(color=theme['text']))
    fig.update_yaxes(title_text=y_title, showgrid=True, gridcolor=theme['grid'],
                     linecolor=theme['text'], tickfont=dict(color=theme['text']))


def build_price_figure(series: list, symbol: str, chart_type: str = 'line', dark: bool = False) -> go.Figure:
    """Opening vs closing price, one point per PricePoint"""
    dates = [p.date for p in series]
    fig = go.Figure()
    fig.add_trace(_trace(chart_type, dates, [p.open for p in series],
                         f"{symbol} Opening Price", OPEN_COLOR, OPEN_FILL))
    fig.add_trace(_trace(chart_type, dates, [p.close for p in series],
                         f"{symbol} Closing Price", CLOSE_COLOR, CLOSE_FILL))
    fig.update_traces(hovertemplate='%{fullData.name}: $%{y:.2f} (%{x|%b %d, %Y})<extra></extra>')
    _apply_theme(fig, dark, 'Date', 'Price (USD)')
    return fig


def build_live_figure(ticks: list, symbol: str, chart_type: str = 'line', dark: bool = False) -> go.Figure:
    """Single streaming price line, y-axis pinned one dollar around the latest tick"""
    times = [t.time for t in ticks]
    fig = go.Figure()
    fig.add_trace(_trace(chart_type, times, [t.price for t in ticks],
                         f"{symbol} Live Price", LIVE_COLOR, LIVE_COLOR))
    fig.update_traces(hovertemplate='Time: %{x|%H:%M:%S}<br>Price: $%{y:.4f}<extra></extra>')
    _apply_theme(fig, dark, 'Time', 'Price (USD)')
    latest = ticks[-1].price
    fig.update_yaxes(range=[latest - 1, latest + 1])
    return fig


class ChartController:
    """Sole owner of the chart handle for one canvas"""

    def __init__(self, canvas: ChartCanvas, live: bool = False,
                 chart_type: str = 'line', dark: bool = False):
        if chart_type not in CHART_TYPES:
            raise ValueError(f"Unsupported chart type: {chart_type}")
        self.canvas = canvas
        self.live = live
        self.chart_type = chart_type
        self.dark = dark
        self.series: list = []
        self.symbol = ''
        self.handle: Optional[ChartHandle] = None
        self.renders = 0

    def render(self, series: list, symbol: Optional[str] = None,
               chart_type: Optional[str] = None, dark: Optional[bool] = None) -> Optional[ChartHandle]:
        """Rebuild the chart from series; an empty series just clears it"""
        if chart_type is not None:
            if chart_type not in CHART_TYPES:
                raise ValueError(f"Unsupported chart type: {chart_type}")
            self.chart_type = chart_type
        if dark is not None:
            self.dark = dark
        if symbol is not None:
            self.symbol = symbol
        self.series = list(series or [])

        self.destroy()
        if not self.series:
            return None

        build = build_live_figure if self.live else build_price_figure
        figure = build(self.series, self.symbol, self.chart_type, self.dark)
        self.handle = ChartHandle(self.canvas, figure)
        self.renders += 1
        return self.handle

    def set_theme(self, dark: bool):
        if dark == self.dark:
            return
        self.render(self.series, dark=dark)

    def set_chart_type(self, chart_type: str):
        if chart_type == self.chart_type:
            return
        self.render(self.series, chart_type=chart_type)

    def destroy(self):
        if self.handle is not None:
            self.handle.destroy()
            self.handle = None

    def to_json(self) -> Optional[str]:
        return self.handle.to_json() if self.handle else None
