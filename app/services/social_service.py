"""
Brand Studio - Social Publishing Service
Content validation, token upkeep and the scheduled-post dispatcher
"""
import logging
import requests
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from app.database import db
from app.models.db_models import DBSocialConnection, DBSocialPost, PostStatus
from app.services.oauth_service import get_oauth_service, OAuthError
from app.services.platforms import linkedin, twitter, instagram, threads

logger = logging.getLogger(__name__)

CHARACTER_LIMITS = {
    'linkedin': 3000,
    'twitter': 280,
    'instagram': 2200,
    'threads': 500,
}
DEFAULT_CHARACTER_LIMIT = 1000

# Refresh tokens this long before they expire
TOKEN_REFRESH_WINDOWS = {
    'linkedin': timedelta(minutes=5),
    'twitter': timedelta(minutes=5),
    'instagram': timedelta(days=7),
    'threads': timedelta(days=7),
}

PUBLISHERS = {
    'linkedin': linkedin.publish,
    'twitter': twitter.publish,
    'instagram': instagram.publish,
    'threads': threads.publish,
}


def get_character_limit(platform: str) -> int:
    return CHARACTER_LIMITS.get(platform, DEFAULT_CHARACTER_LIMIT)


def validate_content(content: str, platforms: List[str]) -> Dict:
    """Check content length against every selected platform"""
    errors = []
    for platform in platforms:
        limit = get_character_limit(platform)
        if len(content or '') > limit:
            errors.append(f"{platform}: Content exceeds {limit} characters")
    return {'valid': not errors, 'errors': errors}


def is_token_expired(expires_at: Optional[datetime], window: timedelta = timedelta(0)) -> bool:
    if expires_at is None:
        return True
    return datetime.utcnow() + window >= expires_at


def ensure_valid_token(connection: DBSocialConnection) -> str:
    """
    Return a usable access token for the connection, refreshing it when it is
    inside the platform's refresh window. A failed refresh falls back to the stored token.
    """
    window = TOKEN_REFRESH_WINDOWS.get(connection.platform, timedelta(minutes=5))
    if connection.expires_at is not None and not is_token_expired(connection.expires_at, window):
        return connection.access_token

    refreshable = connection.refresh_token or connection.platform in ('instagram', 'threads')
    if not refreshable:
        return connection.access_token

    try:
        refreshed = get_oauth_service().refresh_token(
            connection.platform, connection.refresh_token, connection.access_token)
    except (OAuthError, requests.RequestException) as e:
        logger.warning(f"Token refresh failed for {connection.platform}, using stored token: {e}")
        return connection.access_token

    connection.access_token = refreshed['access_token']
    if refreshed.get('refresh_token'):
        connection.refresh_token = refreshed['refresh_token']
    if refreshed.get('expires_in'):
        connection.expires_at = datetime.utcnow() + timedelta(seconds=int(refreshed['expires_in']))
    connection.updated_at = datetime.utcnow()
    db.session.commit()
    logger.info(f"Refreshed {connection.platform} access token")
    return connection.access_token


def publish_to_platform(platform: str, content: str, access_token: str,
                        connection: Optional[DBSocialConnection] = None,
                        media_assets: Optional[list] = None) -> Dict:
    publisher = PUBLISHERS.get(platform)
    if publisher is None:
        return {'success': False, 'post_id': None, 'error': f'Unsupported platform: {platform}'}
    return publisher(content, access_token, connection, media_assets or [])


def get_active_connections(platforms: List[str]) -> Dict[str, DBSocialConnection]:
    if not platforms:
        return {}
    connections = DBSocialConnection.query.filter(
        DBSocialConnection.platform.in_(platforms),
        DBSocialConnection.is_active.is_(True)
    ).all()
    return {c.platform: c for c in connections}


def publish_post(post: DBSocialPost) -> Dict:
    """
    Publish one post to each of its platforms and record the outcome on the post.

    Returns:
        Dict with published/failed counts and per-platform error messages
    """
    platforms = post.get_platforms()
    connections = get_active_connections(platforms)
    published_on = post.get_published_on()
    errors = []
    published = 0

    for platform in platforms:
        connection = connections.get(platform)
        if connection is None:
            errors.append(f"{platform}: No active connection")
            continue

        try:
            token = ensure_valid_token(connection)
            result = publish_to_platform(platform, post.content, token, connection, post.get_media_assets())
        except Exception as e:
            logger.error(f"Publishing post {post.id} to {platform} raised: {e}", exc_info=True)
            result = {'success': False, 'error': str(e)}

        if result.get('success'):
            published += 1
            published_on[platform] = datetime.utcnow().isoformat()
            logger.info(f"Post {post.id} published to {platform}: {result.get('post_id')}")
        else:
            errors.append(f"{platform}: {result.get('error') or 'Unknown error'}")

    post.set_published_on(published_on)
    if published:
        post.status = PostStatus.PUBLISHED
        post.published_at = datetime.utcnow()
    else:
        post.status = PostStatus.FAILED
    post.error_message = '; '.join(errors) if errors else None
    db.session.commit()

    return {
        'published': published,
        'failed': len(platforms) - published,
        'errors': errors
    }


def publish_scheduled_posts() -> Dict:
    """Publish every scheduled post that is due. One bad post never stops the batch."""
    now = datetime.utcnow()
    due = DBSocialPost.query.filter(
        DBSocialPost.status == PostStatus.SCHEDULED,
        DBSocialPost.scheduled_for <= now
    ).order_by(DBSocialPost.scheduled_for.asc()).all()

    published = 0
    failed = 0
    for post in due:
        try:
            result = publish_post(post)
            if result['published']:
                published += 1
            else:
                failed += 1
        except Exception as e:
            db.session.rollback()
            logger.error(f"Scheduled post {post.id} failed: {e}", exc_info=True)
            post.status = PostStatus.FAILED
            post.error_message = str(e)
            db.session.commit()
            failed += 1

    if due:
        logger.info(f"Social publish run: {published} published, {failed} failed, {len(due)} due")
    return {'published': published, 'failed': failed, 'total': len(due)}
