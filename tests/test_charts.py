"""Chart handle lifecycle: one live handle per canvas, destroyed before rebuild."""
from datetime import datetime, timedelta, timezone

import pytest

from kpi_dashboard.charts import ChartCanvas, ChartController, build_live_figure, build_price_figure
from kpi_dashboard.data_sources import PricePoint, Tick


def series(n=5):
    start = datetime(2024, 1, 1)
    return [PricePoint(date=start + timedelta(days=i), open=100.0 + i, close=101.0 + i) for i in range(n)]


def ticks(n=3):
    start = datetime(2024, 1, 1, 15, 30, tzinfo=timezone.utc)
    return [Tick(time=start + timedelta(seconds=i), price=200.0 + i) for i in range(n)]


def test_empty_series_leaves_no_handle():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    assert controller.render([], symbol="AAPL") is None
    assert controller.handle is None
    assert canvas.live_handles == []


def test_empty_series_destroys_existing_handle():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    first = controller.render(series(), symbol="AAPL")
    controller.render([])
    assert first.destroyed
    assert canvas.live_handles == []


def test_successive_renders_keep_exactly_one_handle():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    first = controller.render(series(), symbol="AAPL")
    second = controller.render(series(8), symbol="AAPL")

    assert first.destroyed
    assert first.figure is None
    assert not second.destroyed
    assert canvas.live_handles == [second]
    assert controller.handle is second


def test_theme_change_rebuilds_with_dark_colors():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    light = controller.render(series(), symbol="AAPL")
    controller.set_theme(True)

    assert light.destroyed
    assert len(canvas.live_handles) == 1
    layout = controller.handle.figure.layout
    assert layout.paper_bgcolor == "#303030"
    assert layout.xaxis.gridcolor == "#363c4e"


def test_theme_unchanged_does_not_rebuild():
    controller = ChartController(ChartCanvas("historical"))
    handle = controller.render(series(), symbol="AAPL")
    controller.set_theme(False)
    assert controller.handle is handle
    assert controller.renders == 1


def test_chart_type_change_rebuilds_as_bars():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    controller.render(series(), symbol="AAPL")
    controller.set_chart_type("bar")

    assert len(canvas.live_handles) == 1
    assert [t.type for t in controller.handle.figure.data] == ["bar", "bar"]


def test_unknown_chart_type_rejected():
    controller = ChartController(ChartCanvas("historical"))
    with pytest.raises(ValueError):
        controller.render(series(), chart_type="pie")


def test_price_figure_has_open_and_close_traces():
    fig = build_price_figure(series(3), "AAPL")
    names = [t.name for t in fig.data]
    assert names == ["AAPL Opening Price", "AAPL Closing Price"]
    assert list(fig.data[0].y) == [100.0, 101.0, 102.0]
    assert list(fig.data[1].y) == [101.0, 102.0, 103.0]


def test_live_figure_single_trace_around_latest_price():
    fig = build_live_figure(ticks(3), "AAPL")
    assert len(fig.data) == 1
    assert list(fig.data[0].y) == [200.0, 201.0, 202.0]
    assert tuple(fig.layout.yaxis.range) == (201.0, 203.0)


def test_live_controller_uses_ticks():
    canvas = ChartCanvas("live")
    controller = ChartController(canvas, live=True)
    controller.render(ticks(2), symbol="AAPL")
    controller.render(ticks(3), symbol="AAPL")
    assert len(canvas.live_handles) == 1
    assert controller.handle.figure.data[0].name == "AAPL Live Price"


def test_destroy_releases_handle():
    canvas = ChartCanvas("historical")
    controller = ChartController(canvas)
    handle = controller.render(series(), symbol="AAPL")
    controller.destroy()
    controller.destroy()
    assert handle.destroyed
    assert controller.to_json() is None
    assert canvas.live_handles == []
