"""
Session context - credential checks, identity provider calls, persisted login flag
The flag is advisory; real authorization stays with the identity provider.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiohttp
import orjson

from .config import FIREBASE_AUTH_URL, DashboardConfig
from .errors import AuthError, CredentialError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PASSWORD_LENGTH = 6


def validate_email(email: str):
    if not EMAIL_RE.match(email or ''):
        raise CredentialError("Invalid email format")


def validate_password(password: str):
    if len(password or '') < MIN_PASSWORD_LENGTH:
        raise CredentialError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def validate_credentials(email: str, password: str) -> tuple:
    """Trim and check credentials; returns (email, password)"""
    email = (email or '').strip()
    password = (password or '').strip()
    if not email or not password:
        raise CredentialError("Please enter both email and password.")
    validate_email(email)
    validate_password(password)
    return email, password


class Authenticator(ABC):
    """Identity provider client"""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> dict:
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> dict:
        ...


def _failure_reason(payload) -> str:
    """Error code from an Identity Toolkit error body, whatever its shape"""
    if not isinstance(payload, dict):
        return 'UNKNOWN'
    error = payload.get('error')
    if isinstance(error, dict) and isinstance(error.get('message'), str):
        return error['message']
    if isinstance(error, str) and error:
        return error
    return 'UNKNOWN'


class FirebaseAuthenticator(Authenticator):
    """Email/password accounts through the Firebase Identity Toolkit REST API"""

    def __init__(self, api_key: str, base_url: str = FIREBASE_AUTH_URL, timeout: float = 15.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    async def _post(self, action: str, email: str, password: str) -> dict:
        url = f"{self.base_url}/accounts:{action}"
        body = {'email': email, 'password': password, 'returnSecureToken': True}
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, params={'key': self.api_key}, json=body) as resp:
                    payload = await resp.json(content_type=None, loads=orjson.loads)
                    if not resp.ok:
                        raise AuthError(f"Authentication failed: {_failure_reason(payload)}")
                    return payload if isinstance(payload, dict) else {}
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            print(f"[SESSION] Identity provider error: {e!r}")
            raise AuthError("Authentication service unavailable") from e

    async def sign_in(self, email: str, password: str) -> dict:
        return await self._post('signInWithPassword', email, password)

    async def sign_up(self, email: str, password: str) -> dict:
        return await self._post('signUp', email, password)


class SessionContext:
    """Created once at boot and handed to whatever needs the login state"""

    def __init__(self, path: Path, authenticator: Optional[Authenticator] = None):
        self.path = Path(path)
        self.authenticator = authenticator
        self.user: Optional[dict] = None

    @classmethod
    def from_config(cls, config: DashboardConfig) -> 'SessionContext':
        auth = FirebaseAuthenticator(config.firebase_api_key, config.firebase_auth_url,
                                     timeout=config.request_timeout)
        return cls(config.session_path, auth)

    @property
    def logged_in(self) -> bool:
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError):
            return False
        return isinstance(data, dict) and data.get('logged_in') is True

    def _write_flag(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(orjson.dumps({'logged_in': True}))

    async def sign_in(self, email: str, password: str) -> dict:
        email, password = validate_credentials(email, password)
        if self.authenticator is None:
            raise AuthError("No identity provider configured")
        self.user = await self.authenticator.sign_in(email, password)
        self._write_flag()
        print(f"[SESSION] Signed in {email}")
        return self.user

    async def sign_up(self, email: str, password: str, confirm_password: str, username: str) -> dict:
        if not all([(email or '').strip(), password, confirm_password, (username or '').strip()]):
            raise CredentialError("Please fill in all fields.")
        if password != confirm_password:
            raise CredentialError("Passwords do not match!")
        email, password = validate_credentials(email, password)
        if self.authenticator is None:
            raise AuthError("No identity provider configured")
        user = await self.authenticator.sign_up(email, password)
        print(f"[SESSION] Registered {email}")
        return user

    def logout(self):
        self.user = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        print("[SESSION] Signed out")
