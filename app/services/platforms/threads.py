"""
Brand Studio - Threads Publisher
Two-step container/publish flow on graph.threads.net
"""
import os
import logging
import requests
from typing import Dict

from app.services.platforms import SocialPublishError, success_result, error_result, split_media
from app.utils import absolute_url

logger = logging.getLogger(__name__)

API_BASE = 'https://graph.threads.net/v1.0'
MAX_LENGTH = 500


def resolve_credentials(access_token: str, connection=None):
    """
    Returns (access_token, account_id).
    THREADS_USER_ACCESS_TOKEN overrides the stored token; the account id is then looked up.
    """
    override = os.getenv('THREADS_USER_ACCESS_TOKEN', '')
    if override:
        response = requests.get(f'{API_BASE}/me', params={'fields': 'id,username', 'access_token': override},
                                timeout=30)
        if not response.ok or not response.json().get('id'):
            raise SocialPublishError(f'Failed to resolve Threads account for override token ({response.status_code})')
        return override, str(response.json()['id'])

    parts = (getattr(connection, 'username', None) or '').split('|')
    account_id = parts[1] if len(parts) >= 2 else ''
    if not account_id.isdigit():
        raise SocialPublishError(f'Invalid Threads account ID format: {account_id or "(missing)"}. Expected numeric string.')
    return access_token, account_id


def build_container_params(content: str, media_assets=None) -> Dict[str, str]:
    images, videos = split_media(media_assets)
    text = content[:MAX_LENGTH]
    if images:
        return {'media_type': 'IMAGE', 'image_url': absolute_url(images[0]), 'text': text}
    if videos:
        return {'media_type': 'VIDEO', 'video_url': absolute_url(videos[0]), 'text': text}
    return {'media_type': 'TEXT', 'text': text}


def publish(content: str, access_token: str, connection=None, media_assets=None) -> Dict:
    """Create a Threads container and publish it"""
    try:
        token, account_id = resolve_credentials(access_token, connection)
        headers = {'Authorization': f'Bearer {token}'}

        container = requests.post(f'{API_BASE}/{account_id}/threads',
                                  params=build_container_params(content, media_assets),
                                  headers=headers, timeout=60)
        if not container.ok:
            return error_result(f'Failed to create Threads container ({container.status_code}): {container.text[:200]}')
        creation_id = container.json().get('id')
        if not creation_id:
            return error_result('Threads API returned no creation_id from media container')

        published = requests.post(f'{API_BASE}/{account_id}/threads_publish',
                                  params={'creation_id': creation_id}, headers=headers, timeout=60)
        if not published.ok:
            return error_result(f'Failed to publish Threads post ({published.status_code}): {published.text[:200]}')
        post_id = published.json().get('id')
        if not post_id:
            return error_result('Threads API returned success but no post ID in response')

        logger.info(f"Published to Threads: {post_id}")
        return success_result(post_id)

    except SocialPublishError as e:
        return error_result(e.message)
    except requests.RequestException as e:
        logger.error(f"Threads publish error: {e}")
        return error_result(f'Threads API error: {str(e)}')
