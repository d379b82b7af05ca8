"""
Brand Studio - OAuth Tests
"""
import base64
import hashlib
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from app.services.oauth_service import (
    OAuthConfig, OAuthError, OAuthService, OAuthState,
    generate_code_challenge, generate_code_verifier
)


@pytest.fixture(autouse=True)
def clear_states():
    OAuthState._states.clear()
    yield
    OAuthState._states.clear()


class TestPKCE:

    def test_verifier_format(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 43
        assert '=' not in verifier
        assert generate_code_verifier() != verifier

    def test_challenge_is_s256(self):
        verifier = 'dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk'
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip('=')
        assert generate_code_challenge(verifier) == expected
        assert generate_code_challenge(verifier) == 'E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM'


class TestOAuthState:

    def test_single_use(self):
        state = OAuthState.generate('user_1', 'linkedin')

        data = OAuthState.validate(state, 'linkedin')
        assert data['user_id'] == 'user_1'
        assert OAuthState.validate(state, 'linkedin') is None

    def test_wrong_platform(self):
        state = OAuthState.generate('user_1', 'linkedin')
        assert OAuthState.validate(state, 'twitter') is None

    def test_unknown_and_missing(self):
        assert OAuthState.validate('nope') is None
        assert OAuthState.validate(None) is None

    def test_expired(self):
        state = OAuthState.generate('user_1', 'twitter', 'verifier')
        OAuthState._states[state]['expires_at'] = datetime.utcnow() - timedelta(seconds=1)

        assert OAuthState.validate(state, 'twitter') is None

    def test_cleanup_expired(self):
        old = OAuthState.generate(None, 'google')
        OAuthState._states[old]['expires_at'] = datetime.utcnow() - timedelta(minutes=1)
        fresh = OAuthState.generate(None, 'google')

        assert old not in OAuthState._states
        assert fresh in OAuthState._states


class TestAuthUrl:

    def test_callback_urls(self, app):
        assert OAuthConfig.get_callback_url('google') == 'https://example.com/api/email/callback'
        assert OAuthConfig.get_callback_url('threads') == 'https://example.com/api/social/callback/threads'

    def test_unsupported_platform(self, app):
        with pytest.raises(OAuthError) as exc:
            OAuthService().get_auth_url('myspace', 'user_1')
        assert exc.value.status_code == 400

    def test_not_configured(self, app, monkeypatch):
        monkeypatch.delenv('LINKEDIN_CLIENT_ID', raising=False)
        monkeypatch.delenv('LINKEDIN_CLIENT_SECRET', raising=False)

        assert OAuthConfig.is_configured('linkedin') is False
        with pytest.raises(OAuthError) as exc:
            OAuthService().get_auth_url('linkedin', 'user_1')
        assert exc.value.status_code == 400

    def test_twitter_uses_pkce(self, app, monkeypatch):
        monkeypatch.setenv('TWITTER_CLIENT_ID', 'tw-id')
        monkeypatch.setenv('TWITTER_CLIENT_SECRET', 'tw-secret')

        url, state, verifier = OAuthService().get_auth_url('twitter', 'user_1')
        params = parse_qs(urlparse(url).query)

        assert url.startswith('https://twitter.com/i/oauth2/authorize?')
        assert params['code_challenge'] == [generate_code_challenge(verifier)]
        assert params['code_challenge_method'] == ['S256']
        assert params['redirect_uri'] == ['https://example.com/api/social/callback/twitter']
        assert params['state'] == [state]
        assert OAuthState._states[state]['code_verifier'] == verifier

    def test_google_requests_offline_access(self, app, monkeypatch):
        monkeypatch.setenv('GOOGLE_CLIENT_ID', 'g-id')
        monkeypatch.setenv('GOOGLE_CLIENT_SECRET', 'g-secret')

        url, _, verifier = OAuthService().get_auth_url('google', None)
        params = parse_qs(urlparse(url).query)

        assert verifier is None
        assert params['access_type'] == ['offline']
        assert params['prompt'] == ['consent']
        assert 'https://www.googleapis.com/auth/gmail.readonly' in params['scope'][0]


class TestExchange:

    def test_twitter_needs_verifier(self, app):
        with pytest.raises(OAuthError) as exc:
            OAuthService().exchange_code('twitter', 'code')
        assert exc.value.status_code == 400

    @patch('app.services.oauth_service.requests.post')
    def test_linkedin_exchange(self, mock_post, app):
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {'access_token': 'li-token', 'expires_in': 5184000}

        result = OAuthService().exchange_code('linkedin', 'code')

        assert result == {'access_token': 'li-token', 'refresh_token': None, 'expires_in': 5184000}
        assert mock_post.call_args.kwargs['data']['redirect_uri'] == 'https://example.com/api/social/callback/linkedin'

    @patch('app.services.oauth_service.requests.post')
    def test_exchange_error(self, mock_post, app):
        mock_post.return_value = MagicMock(status_code=400)
        mock_post.return_value.json.return_value = {'error': 'invalid_grant', 'error_description': 'Code expired'}

        with pytest.raises(OAuthError, match='Code expired'):
            OAuthService().exchange_code('google', 'code')
