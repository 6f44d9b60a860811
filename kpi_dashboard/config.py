"""
Dashboard configuration
Built from environment variables (a .env file in the project root is loaded first)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE = PROJECT_ROOT / '.env'

FMP_BASE_URL = "https://financialmodelingprep.com/api/v3"
FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
FINNHUB_WS_URL = "wss://ws.finnhub.io"
FIREBASE_AUTH_URL = "https://identitytoolkit.googleapis.com/v1"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class DashboardConfig:
    """Everything the server needs to know at boot"""
    fmp_api_key: str = ''
    finnhub_api_key: str = ''
    firebase_api_key: str = ''

    fmp_base_url: str = FMP_BASE_URL
    finnhub_base_url: str = FINNHUB_BASE_URL
    finnhub_ws_url: str = FINNHUB_WS_URL
    firebase_auth_url: str = FIREBASE_AUTH_URL

    host: str = '127.0.0.1'
    port: int = 8765
    request_timeout: float = 15.0
    debounce_sec: float = 0.3
    live_capacity: int = 50
    news_days: int = 7

    # Dashboard variants as options
    live_ticker: bool = True
    news: bool = True
    dark_mode: bool = False

    session_path: Path = PROJECT_ROOT / 'output' / 'session.json'

    @property
    def stream_url(self) -> str:
        if not self.finnhub_api_key:
            return self.finnhub_ws_url
        return f"{self.finnhub_ws_url}?token={self.finnhub_api_key}"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> 'DashboardConfig':
        env_file = env_file or _ENV_FILE
        if env_file.exists():
            load_dotenv(str(env_file))

        defaults = cls()
        return cls(
            fmp_api_key=os.getenv('FMP_API_KEY', '').strip(),
            finnhub_api_key=os.getenv('FINNHUB_API_KEY', '').strip(),
            firebase_api_key=os.getenv('FIREBASE_API_KEY', '').strip(),
            fmp_base_url=os.getenv('KPI_FMP_BASE_URL', defaults.fmp_base_url),
            finnhub_base_url=os.getenv('KPI_FINNHUB_BASE_URL', defaults.finnhub_base_url),
            finnhub_ws_url=os.getenv('KPI_FINNHUB_WS_URL', defaults.finnhub_ws_url),
            firebase_auth_url=os.getenv('KPI_FIREBASE_AUTH_URL', defaults.firebase_auth_url),
            host=os.getenv('KPI_HOST', defaults.host),
            port=_env_int('KPI_PORT', defaults.port),
            request_timeout=_env_float('KPI_REQUEST_TIMEOUT', defaults.request_timeout),
            debounce_sec=_env_int('KPI_DEBOUNCE_MS', int(defaults.debounce_sec * 1000)) / 1000,
            live_capacity=_env_int('KPI_LIVE_CAPACITY', defaults.live_capacity),
            news_days=_env_int('KPI_NEWS_DAYS', defaults.news_days),
            live_ticker=_env_bool('KPI_LIVE_TICKER', defaults.live_ticker),
            news=_env_bool('KPI_NEWS', defaults.news),
            dark_mode=_env_bool('KPI_DARK_MODE', defaults.dark_mode),
            session_path=Path(os.getenv('KPI_SESSION_PATH', str(defaults.session_path))),
        )
