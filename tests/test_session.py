"""Credential validation and the persisted login flag."""
import asyncio

import pytest

from kpi_dashboard.errors import AuthError, CredentialError
from kpi_dashboard.session import (Authenticator, SessionContext, validate_credentials,
                                   validate_email, validate_password)


class RecordingAuthenticator(Authenticator):
    def __init__(self, fail=None):
        self.fail = fail
        self.calls = []

    async def sign_in(self, email, password):
        self.calls.append(('sign_in', email, password))
        if self.fail:
            raise AuthError(self.fail)
        return {'email': email, 'idToken': 'token'}

    async def sign_up(self, email, password):
        self.calls.append(('sign_up', email, password))
        if self.fail:
            raise AuthError(self.fail)
        return {'email': email}


@pytest.mark.parametrize('email', ['', 'plain', 'no@dot', 'sp ace@x.com', '@x.com'])
def test_bad_emails_rejected(email):
    with pytest.raises(CredentialError, match='Invalid email format'):
        validate_email(email)


def test_good_email_accepted():
    validate_email('trader@example.com')


def test_short_password_rejected():
    with pytest.raises(CredentialError, match='at least 6 characters'):
        validate_password('12345')
    validate_password('123456')


def test_credentials_are_trimmed():
    assert validate_credentials('  a@b.co ', ' secret1 ') == ('a@b.co', 'secret1')


def test_blank_credentials_rejected():
    with pytest.raises(CredentialError, match='enter both'):
        validate_credentials('   ', 'secret1')


def test_credential_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate_credentials('x', 'y')


def test_invalid_input_never_reaches_provider(tmp_path):
    auth = RecordingAuthenticator()
    session = SessionContext(tmp_path / 'session.json', auth)

    with pytest.raises(CredentialError):
        asyncio.run(session.sign_in('not-an-email', 'secret1'))
    with pytest.raises(CredentialError):
        asyncio.run(session.sign_in('a@b.co', '123'))

    assert auth.calls == []
    assert not session.logged_in


def test_sign_in_persists_flag(tmp_path):
    path = tmp_path / 'nested' / 'session.json'
    auth = RecordingAuthenticator()
    session = SessionContext(path, auth)

    user = asyncio.run(session.sign_in('a@b.co', 'secret1'))
    assert user['email'] == 'a@b.co'
    assert auth.calls == [('sign_in', 'a@b.co', 'secret1')]
    assert session.logged_in

    # a fresh context on the same file sees the flag
    assert SessionContext(path).logged_in


def test_provider_rejection_leaves_flag_unset(tmp_path):
    session = SessionContext(tmp_path / 'session.json',
                             RecordingAuthenticator(fail='Authentication failed: INVALID_PASSWORD'))
    with pytest.raises(AuthError, match='INVALID_PASSWORD'):
        asyncio.run(session.sign_in('a@b.co', 'secret1'))
    assert not session.logged_in


def test_missing_provider_is_an_auth_error(tmp_path):
    session = SessionContext(tmp_path / 'session.json')
    with pytest.raises(AuthError):
        asyncio.run(session.sign_in('a@b.co', 'secret1'))


def test_logout_clears_flag(tmp_path):
    session = SessionContext(tmp_path / 'session.json', RecordingAuthenticator())
    asyncio.run(session.sign_in('a@b.co', 'secret1'))
    session.logout()
    assert not session.logged_in
    # logging out twice is fine
    session.logout()


def test_corrupt_flag_file_means_logged_out(tmp_path):
    path = tmp_path / 'session.json'
    path.write_text('{not json')
    assert not SessionContext(path).logged_in
    path.write_text('{"logged_in": "yes"}')
    assert not SessionContext(path).logged_in


def test_sign_up_requires_every_field(tmp_path):
    auth = RecordingAuthenticator()
    session = SessionContext(tmp_path / 'session.json', auth)
    with pytest.raises(CredentialError, match='fill in all fields'):
        asyncio.run(session.sign_up('a@b.co', 'secret1', 'secret1', ''))
    assert auth.calls == []


def test_sign_up_password_mismatch(tmp_path):
    auth = RecordingAuthenticator()
    session = SessionContext(tmp_path / 'session.json', auth)
    with pytest.raises(CredentialError, match='Passwords do not match!'):
        asyncio.run(session.sign_up('a@b.co', 'secret1', 'secret2', 'trader'))
    assert auth.calls == []


def test_sign_up_does_not_log_in(tmp_path):
    auth = RecordingAuthenticator()
    session = SessionContext(tmp_path / 'session.json', auth)
    asyncio.run(session.sign_up('a@b.co', 'secret1', 'secret1', 'trader'))
    assert auth.calls == [('sign_up', 'a@b.co', 'secret1')]
    assert not session.logged_in


def identity_app(seen):
    from aiohttp import web

    async def handler(request):
        body = await request.json()
        seen.append((request.path, request.query.get('key'), body))
        if body['password'] != 'secret1':
            return web.json_response({'error': {'code': 400, 'message': 'INVALID_PASSWORD'}}, status=400)
        return web.json_response({'email': body['email'], 'idToken': 'abc', 'localId': 'u1'})

    app = web.Application()
    app.router.add_post('/v1/{action}', handler)
    return app


def test_firebase_authenticator_round_trip():
    from aiohttp.test_utils import TestServer

    from kpi_dashboard.session import FirebaseAuthenticator

    seen = []

    async def run():
        async with TestServer(identity_app(seen)) as server:
            base = str(server.make_url('/v1'))
            auth = FirebaseAuthenticator('web-key', base_url=base, timeout=5)
            user = await auth.sign_in('a@b.co', 'secret1')
            with pytest.raises(AuthError, match='Authentication failed: INVALID_PASSWORD'):
                await auth.sign_in('a@b.co', 'wrong-pass')
            await auth.sign_up('new@b.co', 'secret1')
            return user

    user = asyncio.run(run())
    assert user['localId'] == 'u1'
    assert [s[0] for s in seen] == ['/v1/accounts:signInWithPassword', '/v1/accounts:signInWithPassword',
                                    '/v1/accounts:signUp']
    assert all(s[1] == 'web-key' for s in seen)
    assert seen[0][2]['returnSecureToken'] is True


def test_firebase_unreachable_is_auth_error():
    import socket

    from kpi_dashboard.session import FirebaseAuthenticator

    with socket.socket() as sock:
        sock.bind(('127.0.0.1', 0))
        port = sock.getsockname()[1]

    auth = FirebaseAuthenticator('k', base_url=f'http://127.0.0.1:{port}/v1', timeout=2)
    with pytest.raises(AuthError, match='unavailable'):
        asyncio.run(auth.sign_in('a@b.co', 'secret1'))


def test_provider_error_as_plain_string_is_auth_error():
    from aiohttp import web
    from aiohttp.test_utils import TestServer

    from kpi_dashboard.session import FirebaseAuthenticator

    async def handler(request):
        return web.json_response({'error': 'QUOTA_EXCEEDED'}, status=429)

    app = web.Application()
    app.router.add_post('/v1/{action}', handler)

    async def run():
        async with TestServer(app) as server:
            auth = FirebaseAuthenticator('k', base_url=str(server.make_url('/v1')), timeout=5)
            with pytest.raises(AuthError, match='Authentication failed: QUOTA_EXCEEDED'):
                await auth.sign_in('a@b.co', 'secret1')

    asyncio.run(run())


def test_authenticator_must_implement_both_calls():
    class SignInOnly(Authenticator):
        async def sign_in(self, email, password):
            return {}

    with pytest.raises(TypeError):
        SignInOnly()
