"""
Brand Studio - Instagram Publisher
Instagram Business publishing through the Facebook Graph API (container -> publish)
"""
import time
import logging
import requests
from typing import Dict, Optional

from app.services.platforms import SocialPublishError, success_result, error_result, split_media
from app.utils import absolute_url

logger = logging.getLogger(__name__)

GRAPH_BASE = 'https://graph.facebook.com/v24.0'
MAX_CAPTION = 2200
POLL_INTERVAL = 5
POLL_TIMEOUT = 5 * 60


def _graph_error(response) -> str:
    try:
        error = response.json().get('error') or {}
    except ValueError:
        return response.text[:200]
    return error.get('error_user_msg') or error.get('message') or response.text[:200]


def get_account_id(access_token: str, connection=None) -> str:
    """Instagram business account id, stored as username|ig_id|page_id on connect"""
    parts = (getattr(connection, 'username', None) or '').split('|')
    if len(parts) >= 2 and parts[1]:
        return parts[1]

    response = requests.get(f'{GRAPH_BASE}/me', params={
        'fields': 'id,instagram_business_account{id}',
        'access_token': access_token
    }, timeout=30)
    if not response.ok:
        raise SocialPublishError(f'Failed to look up Instagram account: {_graph_error(response)}')
    account = response.json().get('instagram_business_account') or {}
    if not account.get('id'):
        raise SocialPublishError('No Instagram Business account found for this connection')
    return account['id']


def create_container(access_token: str, account_id: str, image_url: str, caption: Optional[str]) -> str:
    body = {'image_url': absolute_url(image_url)}
    if caption and caption.strip():
        body['caption'] = caption
    response = requests.post(f'{GRAPH_BASE}/{account_id}/media', json=body, headers={
        'Authorization': f'Bearer {access_token}'
    }, timeout=60)
    if not response.ok:
        raise SocialPublishError(
            f'Failed to create Instagram media container ({response.status_code}): {_graph_error(response)}')
    container_id = response.json().get('id')
    if not container_id:
        raise SocialPublishError('Instagram API returned no container ID')
    return container_id


def wait_for_container(access_token: str, container_id: str,
                       timeout: int = POLL_TIMEOUT, interval: int = POLL_INTERVAL) -> None:
    """Poll status_code until FINISHED/PUBLISHED; ERROR and EXPIRED fail"""
    deadline = time.monotonic() + timeout
    while True:
        response = requests.get(f'{GRAPH_BASE}/{container_id}', params={'fields': 'status_code'}, headers={
            'Authorization': f'Bearer {access_token}'
        }, timeout=30)
        if not response.ok:
            raise SocialPublishError(
                f'Failed to check media container status ({response.status_code}): {_graph_error(response)}')

        status = response.json().get('status_code')
        if status in ('FINISHED', 'PUBLISHED'):
            return
        if status == 'ERROR':
            raise SocialPublishError('Media container failed to process. Status: ERROR')
        if status == 'EXPIRED':
            raise SocialPublishError('Media container expired. It must be published within 24 hours of creation.')

        if time.monotonic() >= deadline:
            raise SocialPublishError('Timed out waiting for Instagram to process the media')
        time.sleep(interval)


def publish(content: str, access_token: str, connection=None, media_assets=None) -> Dict:
    """Publish a single-image post with the content as caption"""
    images, _videos = split_media(media_assets)
    if not images:
        return error_result('Instagram requires at least one image')

    try:
        account_id = get_account_id(access_token, connection)
        container_id = create_container(access_token, account_id, images[0], content[:MAX_CAPTION])
        wait_for_container(access_token, container_id)

        response = requests.post(f'{GRAPH_BASE}/{account_id}/media_publish', json={
            'creation_id': container_id
        }, headers={'Authorization': f'Bearer {access_token}'}, timeout=60)
        if not response.ok:
            return error_result(f'Failed to publish Instagram media ({response.status_code}): {_graph_error(response)}')

        media_id = response.json().get('id')
        if not media_id:
            return error_result('Instagram API returned no media ID')
        logger.info(f"Published to Instagram: {media_id}")
        return success_result(media_id)

    except SocialPublishError as e:
        return error_result(e.message)
    except requests.RequestException as e:
        logger.error(f"Instagram publish error: {e}")
        return error_result(f'Instagram API error: {str(e)}')
