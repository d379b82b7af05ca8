"""
Brand Studio - OAuth Service
Handles OAuth2 flows for LinkedIn, Twitter/X, Instagram (via Facebook), Threads and Google (Gmail)
"""
import os
import base64
import hashlib
import secrets
import logging
import requests
from datetime import datetime, timedelta
from urllib.parse import urlencode
from typing import Optional, Dict, Tuple

from app.utils import get_site_url

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class OAuthConfig:
    """OAuth configuration for all platforms, read from the environment at call time"""

    LINKEDIN_SCOPES = 'openid profile email w_member_social'
    TWITTER_SCOPES = 'tweet.read tweet.write users.read offline.access media.write'
    INSTAGRAM_SCOPES = 'instagram_basic,instagram_content_publish,pages_show_list,pages_read_engagement,business_management'
    THREADS_SCOPES = 'threads_basic,threads_content_publish'
    GOOGLE_SCOPES = ' '.join([
        'https://www.googleapis.com/auth/gmail.readonly',
        'https://www.googleapis.com/auth/userinfo.email',
        'https://www.googleapis.com/auth/userinfo.profile',
    ])

    # platform -> (client id env var, client secret env var)
    CREDENTIALS = {
        'linkedin': ('LINKEDIN_CLIENT_ID', 'LINKEDIN_CLIENT_SECRET'),
        'twitter': ('TWITTER_CLIENT_ID', 'TWITTER_CLIENT_SECRET'),
        'instagram': ('FACEBOOK_APP_ID', 'FACEBOOK_APP_SECRET'),
        'threads': ('THREADS_APP_ID', 'THREADS_APP_SECRET'),
        'google': ('GOOGLE_CLIENT_ID', 'GOOGLE_CLIENT_SECRET'),
    }

    @classmethod
    def client_id(cls, platform: str) -> str:
        return os.getenv(cls.CREDENTIALS[platform][0], '')

    @classmethod
    def client_secret(cls, platform: str) -> str:
        return os.getenv(cls.CREDENTIALS[platform][1], '')

    @classmethod
    def get_callback_url(cls, platform: str) -> str:
        """Get OAuth callback URL for a platform"""
        if platform == 'google':
            return f"{get_site_url()}/api/email/callback"
        return f"{get_site_url()}/api/social/callback/{platform}"

    @classmethod
    def is_configured(cls, platform: str) -> bool:
        """Check if OAuth is configured for a platform"""
        if platform not in cls.CREDENTIALS:
            return False
        return bool(cls.client_id(platform) and cls.client_secret(platform))


class OAuthState:
    """Manages OAuth state parameters for CSRF protection"""

    # In-memory state store (single process)
    _states: Dict[str, Dict] = {}

    @classmethod
    def generate(cls, user_id: Optional[str], platform: str, code_verifier: Optional[str] = None) -> str:
        """Generate a secure state parameter"""
        cls.cleanup_expired()
        state = secrets.token_urlsafe(32)
        cls._states[state] = {
            'user_id': user_id,
            'platform': platform,
            'code_verifier': code_verifier,
            'created_at': datetime.utcnow(),
            'expires_at': datetime.utcnow() + timedelta(minutes=10)
        }
        return state

    @classmethod
    def validate(cls, state: Optional[str], platform: Optional[str] = None) -> Optional[Dict]:
        """Validate and consume a state parameter"""
        if not state or state not in cls._states:
            return None

        data = cls._states.pop(state)

        if datetime.utcnow() > data['expires_at']:
            return None
        if platform and data['platform'] != platform:
            return None

        return data

    @classmethod
    def cleanup_expired(cls):
        """Remove expired states"""
        now = datetime.utcnow()
        expired = [s for s, d in cls._states.items() if now > d['expires_at']]
        for s in expired:
            cls._states.pop(s, None)


def generate_code_verifier() -> str:
    """PKCE verifier: 32 random bytes, base64url without padding"""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode().rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """PKCE S256 challenge for a verifier"""
    digest = hashlib.sha256(verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip('=')


class OAuthService:
    """
    OAuth2 service for the connected accounts

    Supported platforms:
    - linkedin: member posting
    - twitter: X API v2 with PKCE
    - instagram: Instagram Business via a Facebook Page
    - threads: Threads API
    - google: Gmail inbox (read-only)
    """

    SUPPORTED = ('linkedin', 'twitter', 'instagram', 'threads', 'google')

    def __init__(self):
        self.config = OAuthConfig()

    # ==========================================
    # AUTHORIZATION URL GENERATION
    # ==========================================

    def get_auth_url(self, platform: str, user_id: Optional[str]) -> Tuple[str, str, Optional[str]]:
        """
        Generate OAuth authorization URL

        Returns:
            Tuple of (auth_url, state, code_verifier); the verifier is only set for PKCE platforms
        """
        if platform not in self.SUPPORTED:
            raise OAuthError(f"Unsupported platform: {platform}", status_code=400)
        if not self.config.is_configured(platform):
            raise OAuthError(f"{platform.title()} OAuth is not configured", status_code=400)

        code_verifier = generate_code_verifier() if platform == 'twitter' else None
        state = OAuthState.generate(user_id, platform, code_verifier)
        redirect_uri = self.config.get_callback_url(platform)
        client_id = self.config.client_id(platform)

        if platform == 'linkedin':
            params = {
                'response_type': 'code',
                'client_id': client_id,
                'redirect_uri': redirect_uri,
                'scope': self.config.LINKEDIN_SCOPES,
                'state': state
            }
            url = f"https://www.linkedin.com/oauth/v2/authorization?{urlencode(params)}"
        elif platform == 'twitter':
            params = {
                'response_type': 'code',
                'client_id': client_id,
                'redirect_uri': redirect_uri,
                'scope': self.config.TWITTER_SCOPES,
                'state': state,
                'code_challenge': generate_code_challenge(code_verifier),
                'code_challenge_method': 'S256'
            }
            url = f"https://twitter.com/i/oauth2/authorize?{urlencode(params)}"
        elif platform == 'instagram':
            params = {
                'client_id': client_id,
                'redirect_uri': redirect_uri,
                'scope': self.config.INSTAGRAM_SCOPES,
                'state': state,
                'response_type': 'code'
            }
            url = f"https://www.facebook.com/v18.0/dialog/oauth?{urlencode(params)}"
        elif platform == 'threads':
            params = {
                'client_id': client_id,
                'redirect_uri': redirect_uri,
                'scope': self.config.THREADS_SCOPES,
                'state': state,
                'response_type': 'code'
            }
            url = f"https://threads.net/oauth/authorize?{urlencode(params)}"
        else:
            params = {
                'client_id': client_id,
                'redirect_uri': redirect_uri,
                'scope': self.config.GOOGLE_SCOPES,
                'state': state,
                'response_type': 'code',
                'access_type': 'offline',
                'prompt': 'consent'  # Force refresh token
            }
            url = f"https://accounts.google.com/o/oauth2/v2/auth?{urlencode(params)}"

        return url, state, code_verifier

    # ==========================================
    # TOKEN EXCHANGE
    # ==========================================

    def exchange_code(self, platform: str, code: str, code_verifier: Optional[str] = None) -> Dict:
        """
        Exchange authorization code for access token

        Returns:
            Dict with access_token, refresh_token (if available), expires_in
        """
        if platform == 'linkedin':
            return self._linkedin_exchange(code)
        elif platform == 'twitter':
            if not code_verifier:
                raise OAuthError("Missing PKCE code verifier", status_code=400)
            return self._twitter_exchange(code, code_verifier)
        elif platform == 'instagram':
            return self._instagram_exchange(code)
        elif platform == 'threads':
            return self._threads_exchange(code)
        elif platform == 'google':
            return self._google_exchange(code)
        raise OAuthError(f"Unsupported platform: {platform}", status_code=400)

    def _linkedin_exchange(self, code: str) -> Dict:
        """Exchange LinkedIn auth code for token"""
        response = requests.post('https://www.linkedin.com/oauth/v2/accessToken', data={
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.config.get_callback_url('linkedin'),
            'client_id': self.config.client_id('linkedin'),
            'client_secret': self.config.client_secret('linkedin')
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            logger.error(f"LinkedIn token exchange failed: {result}")
            raise OAuthError(f"LinkedIn error: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token'),
            'expires_in': result.get('expires_in', 3600)
        }

    def _twitter_basic_auth(self) -> Tuple[str, str]:
        return self.config.client_id('twitter'), self.config.client_secret('twitter')

    def _twitter_exchange(self, code: str, code_verifier: str) -> Dict:
        """Exchange Twitter auth code (PKCE) for token"""
        response = requests.post('https://api.twitter.com/2/oauth2/token', data={
            'code': code,
            'grant_type': 'authorization_code',
            'redirect_uri': self.config.get_callback_url('twitter'),
            'code_verifier': code_verifier,
            'client_id': self.config.client_id('twitter')
        }, auth=self._twitter_basic_auth(), timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if response.status_code != 200 or not result.get('access_token'):
            logger.error(f"Twitter token exchange failed: {response.status_code} {str(result)[:200]}")
            raise OAuthError(f"Twitter error: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token'),
            'expires_in': result.get('expires_in', 7200)
        }

    def _instagram_exchange(self, code: str) -> Dict:
        """Exchange Facebook auth code for a long-lived token (Instagram publishing)"""
        response = requests.get('https://graph.facebook.com/v18.0/oauth/access_token', params={
            'client_id': self.config.client_id('instagram'),
            'client_secret': self.config.client_secret('instagram'),
            'redirect_uri': self.config.get_callback_url('instagram'),
            'code': code
        }, timeout=REQUEST_TIMEOUT)
        data = _json(response)

        if 'error' in data or not data.get('access_token'):
            logger.error(f"Facebook token exchange failed: {data.get('error')}")
            raise OAuthError(f"Facebook error: {_graph_error(data)}")

        access_token = data['access_token']
        long_lived = self._facebook_long_lived_token(access_token)

        return {
            'access_token': long_lived.get('access_token', access_token),
            'refresh_token': None,
            'expires_in': long_lived.get('expires_in', data.get('expires_in', 3600))
        }

    def _facebook_long_lived_token(self, short_token: str) -> Dict:
        """Exchange short-lived token for long-lived token (60 days)"""
        response = requests.get('https://graph.facebook.com/v18.0/oauth/access_token', params={
            'grant_type': 'fb_exchange_token',
            'client_id': self.config.client_id('instagram'),
            'client_secret': self.config.client_secret('instagram'),
            'fb_exchange_token': short_token
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            logger.warning(f"Failed to get long-lived token: {result.get('error')}")
            return {'access_token': short_token}  # Fall back to short token

        logger.info(f"Got long-lived Facebook token, expires_in: {result.get('expires_in', 'unknown')}")
        return result

    def _threads_exchange(self, code: str) -> Dict:
        """Exchange Threads auth code, then upgrade to a long-lived token"""
        response = requests.post('https://graph.threads.net/oauth/access_token', data={
            'client_id': self.config.client_id('threads'),
            'client_secret': self.config.client_secret('threads'),
            'grant_type': 'authorization_code',
            'redirect_uri': self.config.get_callback_url('threads'),
            'code': code
        }, timeout=REQUEST_TIMEOUT)
        data = _json(response)

        if 'error' in data or not data.get('access_token'):
            logger.error(f"Threads token exchange failed: {data}")
            raise OAuthError(f"Threads error: {_graph_error(data)}")

        short_token = data['access_token']
        long_response = requests.get('https://graph.threads.net/access_token', params={
            'grant_type': 'th_exchange_token',
            'client_secret': self.config.client_secret('threads'),
            'access_token': short_token
        }, timeout=REQUEST_TIMEOUT)
        long_lived = _json(long_response)

        if 'error' in long_lived or not long_lived.get('access_token'):
            logger.warning(f"Failed to get long-lived Threads token: {long_lived.get('error')}")
            return {'access_token': short_token, 'refresh_token': None, 'expires_in': data.get('expires_in', 3600)}

        return {
            'access_token': long_lived['access_token'],
            'refresh_token': None,
            'expires_in': long_lived.get('expires_in', 60 * 24 * 3600)
        }

    def _google_exchange(self, code: str) -> Dict:
        """Exchange Google auth code for token"""
        response = requests.post('https://oauth2.googleapis.com/token', data={
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.config.get_callback_url('google'),
            'client_id': self.config.client_id('google'),
            'client_secret': self.config.client_secret('google')
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            logger.error(f"Google token exchange failed: {result.get('error')}")
            raise OAuthError(f"Google error: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token'),
            'expires_in': result.get('expires_in', 3600)
        }

    # ==========================================
    # TOKEN REFRESH
    # ==========================================

    def refresh_token(self, platform: str, refresh_token: Optional[str], access_token: Optional[str] = None) -> Dict:
        """
        Refresh an expiring access token

        Instagram and Threads have no refresh token; their long-lived
        access token is exchanged for a fresh one instead.
        """
        if platform == 'linkedin':
            return self._linkedin_refresh(refresh_token)
        elif platform == 'twitter':
            return self._twitter_refresh(refresh_token)
        elif platform == 'instagram':
            return self._instagram_refresh(access_token)
        elif platform == 'threads':
            return self._threads_refresh(access_token)
        elif platform == 'google':
            return self._google_refresh(refresh_token)
        raise OAuthError(f"Token refresh not supported for {platform}")

    def _linkedin_refresh(self, refresh_token: Optional[str]) -> Dict:
        if not refresh_token:
            raise OAuthError("LinkedIn refresh failed: no refresh token")
        response = requests.post('https://www.linkedin.com/oauth/v2/accessToken', data={
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
            'client_id': self.config.client_id('linkedin'),
            'client_secret': self.config.client_secret('linkedin')
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            raise OAuthError(f"LinkedIn refresh failed: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token', refresh_token),
            'expires_in': result.get('expires_in', 3600)
        }

    def _twitter_refresh(self, refresh_token: Optional[str]) -> Dict:
        if not refresh_token:
            raise OAuthError("Twitter refresh failed: no refresh token")
        response = requests.post('https://api.twitter.com/2/oauth2/token', data={
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
            'client_id': self.config.client_id('twitter')
        }, auth=self._twitter_basic_auth(), timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if response.status_code != 200 or not result.get('access_token'):
            raise OAuthError(f"Twitter refresh failed: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token', refresh_token),
            'expires_in': result.get('expires_in', 7200)
        }

    def _instagram_refresh(self, access_token: Optional[str]) -> Dict:
        if not access_token:
            raise OAuthError("Instagram refresh failed: no access token")
        response = requests.get('https://graph.facebook.com/v18.0/oauth/access_token', params={
            'grant_type': 'fb_exchange_token',
            'client_id': self.config.client_id('instagram'),
            'client_secret': self.config.client_secret('instagram'),
            'fb_exchange_token': access_token
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            raise OAuthError(f"Instagram refresh failed: {_graph_error(result)}")

        return {
            'access_token': result['access_token'],
            'refresh_token': None,
            'expires_in': result.get('expires_in', 60 * 24 * 3600)
        }

    def _threads_refresh(self, access_token: Optional[str]) -> Dict:
        if not access_token:
            raise OAuthError("Threads refresh failed: no access token")
        response = requests.get('https://graph.threads.net/refresh_access_token', params={
            'grant_type': 'th_refresh_token',
            'access_token': access_token
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            raise OAuthError(f"Threads refresh failed: {_graph_error(result)}")

        return {
            'access_token': result['access_token'],
            'refresh_token': None,
            'expires_in': result.get('expires_in', 60 * 24 * 3600)
        }

    def _google_refresh(self, refresh_token: Optional[str]) -> Dict:
        if not refresh_token:
            raise OAuthError("Google refresh failed: no refresh token")
        response = requests.post('https://oauth2.googleapis.com/token', data={
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
            'client_id': self.config.client_id('google'),
            'client_secret': self.config.client_secret('google')
        }, timeout=REQUEST_TIMEOUT)
        result = _json(response)

        if 'error' in result or not result.get('access_token'):
            raise OAuthError(f"Google refresh failed: {result.get('error_description', result.get('error', 'Unknown error'))}")

        return {
            'access_token': result['access_token'],
            # Google usually omits the refresh token on refresh
            'refresh_token': result.get('refresh_token', refresh_token),
            'expires_in': result.get('expires_in', 3600)
        }

    # ==========================================
    # ACCOUNT DISCOVERY
    # ==========================================

    def get_profile(self, platform: str, access_token: str) -> Dict:
        """
        Fetch the connected account identity.

        Returns:
            Dict with username (platform encoded) and profile_image
        """
        if platform == 'linkedin':
            data = _json(requests.get('https://api.linkedin.com/v2/userinfo', headers={
                'Authorization': f'Bearer {access_token}'
            }, timeout=REQUEST_TIMEOUT))
            if not data.get('sub'):
                raise OAuthError("Could not get LinkedIn profile")
            return {'username': data.get('name') or data['sub'], 'person_id': data['sub'], 'profile_image': data.get('picture')}

        if platform == 'twitter':
            data = _json(requests.get('https://api.twitter.com/2/users/me', params={
                'user.fields': 'profile_image_url'
            }, headers={'Authorization': f'Bearer {access_token}'}, timeout=REQUEST_TIMEOUT)).get('data') or {}
            if not data.get('username'):
                raise OAuthError("Could not get Twitter profile")
            return {'username': data['username'], 'profile_image': data.get('profile_image_url')}

        if platform == 'instagram':
            data = _json(requests.get('https://graph.facebook.com/v18.0/me/accounts', params={
                'fields': 'id,name,instagram_business_account{id,username,profile_picture_url}',
                'access_token': access_token
            }, timeout=REQUEST_TIMEOUT))
            if 'error' in data:
                raise OAuthError(f"Facebook error: {_graph_error(data)}")
            for page in data.get('data', []):
                ig = page.get('instagram_business_account')
                if ig and ig.get('id'):
                    return {
                        'username': f"{ig.get('username', '')}|{ig['id']}|{page['id']}",
                        'profile_image': ig.get('profile_picture_url')
                    }
            raise OAuthError("No Instagram Business account is linked to your Facebook Pages")

        if platform == 'threads':
            data = _json(requests.get('https://graph.threads.net/v1.0/me', params={
                'fields': 'id,username,threads_profile_picture_url',
                'access_token': access_token
            }, timeout=REQUEST_TIMEOUT))
            if not data.get('id'):
                raise OAuthError(f"Could not get Threads profile: {_graph_error(data)}")
            return {
                'username': f"{data.get('username', '')}|{data['id']}",
                'profile_image': data.get('threads_profile_picture_url')
            }

        if platform == 'google':
            data = _json(requests.get('https://www.googleapis.com/oauth2/v2/userinfo', headers={
                'Authorization': f'Bearer {access_token}'
            }, timeout=REQUEST_TIMEOUT))
            if not data.get('email'):
                raise OAuthError("Could not get Google profile")
            return {'username': data['email'], 'email': data['email'], 'profile_image': data.get('picture')}

        raise OAuthError(f"Unsupported platform: {platform}", status_code=400)


def _json(response) -> Dict:
    try:
        data = response.json()
    except ValueError:
        return {'error': f'HTTP {response.status_code}'}
    return data if isinstance(data, dict) else {'data': data}


def _graph_error(data: Dict) -> str:
    error = data.get('error')
    if isinstance(error, dict):
        return error.get('message', 'Unknown error')
    return str(error or 'Unknown error')


class OAuthError(Exception):
    """OAuth-related error"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# Singleton instance
_oauth_service = None


def get_oauth_service() -> OAuthService:
    """Get or create OAuth service instance"""
    global _oauth_service
    if _oauth_service is None:
        _oauth_service = OAuthService()
    return _oauth_service
