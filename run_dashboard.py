"""
Stock Dashboard - Main Entry Point
Serves the dashboard on a local aiohttp server and opens it in the browser

Usage:
    py run_dashboard.py                    # Run with defaults from .env / environment
    py run_dashboard.py --port 9000        # Serve on another port
    py run_dashboard.py --dark --no-news    # Dark theme, no news panel
"""

import argparse
import asyncio

from kpi_dashboard.config import DashboardConfig
from kpi_dashboard.live_server import LiveDashboardServer


def build_config(args) -> DashboardConfig:
    config = DashboardConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.dark:
        config.dark_mode = True
    if args.no_live:
        config.live_ticker = False
    if args.no_news:
        config.news = False
    return config


def main():
    parser = argparse.ArgumentParser(description='Stock KPI Dashboard')
    parser.add_argument('--host', type=str, default=None,
                        help='Interface to bind (default: KPI_HOST or 127.0.0.1)')
    parser.add_argument('--port', type=int, default=None,
                        help='Port to serve on (default: KPI_PORT or 8765)')
    parser.add_argument('--dark', action='store_true',
                        help='Start in dark mode')
    parser.add_argument('--no-live', action='store_true',
                        help='Disable the live streaming quote')
    parser.add_argument('--no-news', action='store_true',
                        help='Disable the company news panel')
    parser.add_argument('--no-browser', action='store_true',
                        help="Don't open a browser window")
    args = parser.parse_args()

    server = LiveDashboardServer(build_config(args), open_browser=not args.no_browser)

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        print("\n[STOP] Shutting down...")


if __name__ == '__main__':
    main()
