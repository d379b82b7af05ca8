"""
Brand Studio - Twitter/X Publisher
Tweets through API v2 with chunked media upload
"""
import time
import logging
import requests
from typing import Dict

from app.services.platforms import SocialPublishError, success_result, error_result, split_media
from app.utils import absolute_url

logger = logging.getLogger(__name__)

API_BASE = 'https://api.twitter.com/2'
MAX_LENGTH = 280
MAX_IMAGES = 4
CHUNK_SIZE = 5 * 1024 * 1024
PERMISSION_DENIED = 'Twitter API permission denied - please reconnect your Twitter account'


def validate_media(media_assets) -> None:
    images, videos = split_media(media_assets)
    if images and videos:
        raise SocialPublishError('Twitter does not allow mixing images and video in one tweet')
    if len(images) > MAX_IMAGES:
        raise SocialPublishError(f'Twitter allows at most {MAX_IMAGES} images per tweet')
    if len(videos) > 1:
        raise SocialPublishError('Twitter allows only 1 video per tweet')


def _media_category(content_type: str) -> str:
    if content_type.startswith('video/'):
        return 'amplify_video'
    if 'gif' in content_type:
        return 'tweet_gif'
    return 'tweet_image'


def upload_media(access_token: str, url: str, kind: str = 'image') -> str:
    """INIT / APPEND / FINALIZE upload; returns the media id"""
    headers = {'Authorization': f'Bearer {access_token}'}

    source_url = absolute_url(url)
    download = requests.get(source_url, timeout=120)
    if not download.ok:
        raise SocialPublishError(f'Failed to download media from {source_url} ({download.status_code})')
    payload = download.content
    content_type = download.headers.get('content-type') or ('video/mp4' if kind == 'video' else 'image/jpeg')

    init = requests.post(f'{API_BASE}/media/upload/initialize', headers=headers, json={
        'media_type': content_type,
        'media_category': _media_category(content_type),
        'total_bytes': len(payload)
    }, timeout=30)
    if init.status_code == 403:
        raise SocialPublishError(PERMISSION_DENIED, 403)
    if not init.ok:
        raise SocialPublishError(f'Failed to initialize Twitter media upload ({init.status_code}): {init.text[:200]}')
    init_data = init.json()
    media_id = (init_data.get('data') or {}).get('id') or init_data.get('media_id_string') or init_data.get('media_id')
    if not media_id:
        raise SocialPublishError('Twitter API did not return media_id in initialize response')

    for index, start in enumerate(range(0, len(payload), CHUNK_SIZE)):
        append = requests.post(
            f'{API_BASE}/media/upload/{media_id}/append',
            headers=headers,
            data={'segment_index': str(index)},
            files={'media': ('chunk', payload[start:start + CHUNK_SIZE], content_type)},
            timeout=120
        )
        if not append.ok:
            raise SocialPublishError(f'Failed to append Twitter media chunk {index + 1} ({append.status_code})')

    finalize = requests.post(f'{API_BASE}/media/upload/{media_id}/finalize', headers=headers, json={}, timeout=30)
    if not finalize.ok:
        raise SocialPublishError(f'Failed to finalize Twitter media upload ({finalize.status_code})')

    processing = (finalize.json().get('data') or finalize.json()).get('processing_info')
    while processing and processing.get('state') in ('pending', 'in_progress'):
        time.sleep(processing.get('check_after_secs') or 5)
        status = requests.get(f'{API_BASE}/media/upload', params={
            'command': 'STATUS', 'media_id': media_id
        }, headers=headers, timeout=30)
        if not status.ok:
            raise SocialPublishError(f'Failed to check video processing status ({status.status_code})')
        processing = (status.json().get('data') or status.json()).get('processing_info')
        if processing and processing.get('state') == 'failed':
            message = (processing.get('error') or {}).get('message', 'Unknown error')
            raise SocialPublishError(f'Video processing failed: {message}')

    return str(media_id)


def publish(content: str, access_token: str, connection=None, media_assets=None) -> Dict:
    """Publish a tweet; media that fails to upload is dropped, the text still goes out"""
    if len(content) > MAX_LENGTH:
        return error_result(f'Twitter content exceeds {MAX_LENGTH} characters ({len(content)})')

    try:
        validate_media(media_assets)

        payload = {'text': content}
        images, videos = split_media(media_assets)
        media_ids = []
        for url, kind in [(u, 'video') for u in videos] + [(u, 'image') for u in images]:
            try:
                media_ids.append(upload_media(access_token, url, kind))
            except SocialPublishError as e:
                if e.status_code == 403:
                    raise
                logger.warning(f"Twitter media upload failed, continuing without it: {e.message}")
        if media_ids:
            payload['media'] = {'media_ids': media_ids}

        response = requests.post(f'{API_BASE}/tweets', headers={
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json'
        }, json=payload, timeout=30)

        if response.status_code == 403:
            return error_result(PERMISSION_DENIED)
        if not response.ok:
            logger.error(f"Twitter API error: {response.status_code} {response.text[:300]}")
            return error_result(f'Failed to publish to Twitter ({response.status_code}): {response.text[:200]}')

        tweet_id = (response.json().get('data') or {}).get('id')
        if not tweet_id:
            return error_result('Twitter API returned success but no tweet ID in response')
        return success_result(tweet_id)

    except SocialPublishError as e:
        return error_result(e.message)
    except requests.RequestException as e:
        logger.error(f"Twitter publish error: {e}")
        return error_result(f'Twitter API error: {str(e)}')


def reply_to_tweet(access_token: str, tweet_id: str, text: str) -> str:
    """Post a reply; returns the reply tweet id"""
    if len(text) > MAX_LENGTH:
        raise SocialPublishError(f'Twitter comment exceeds {MAX_LENGTH} characters ({len(text)})')

    response = requests.post(f'{API_BASE}/tweets', headers={
        'Authorization': f'Bearer {access_token}',
        'Content-Type': 'application/json'
    }, json={'text': text, 'reply': {'in_reply_to_tweet_id': tweet_id}}, timeout=30)

    if response.status_code == 403:
        raise SocialPublishError(PERMISSION_DENIED, 403)
    if not response.ok:
        raise SocialPublishError(f'Failed to post reply on Twitter ({response.status_code})', response.status_code)
    return (response.json().get('data') or {}).get('id')
