"""
Brand Studio - Social Media Routes
Account connections, scheduled posts and publishing for LinkedIn, X, Instagram and Threads
"""
from flask import Blueprint, request, jsonify, redirect, make_response, current_app
from datetime import datetime, timedelta
from urllib.parse import quote
import json
import logging

import requests

from app.database import db
from app.models.db_models import DBSocialConnection, DBSocialPost, PostStatus, SocialPlatform
from app.routes.auth import token_required, admin_required, cron_or_admin
from app.services.oauth_service import get_oauth_service, OAuthState, OAuthError
from app.services.platforms import SocialPublishError
from app.services.platforms import linkedin
from app.services.social_service import (
    validate_content, publish_post, publish_scheduled_posts,
    get_active_connections, ensure_valid_token
)
from app.utils import get_site_url, parse_datetime

logger = logging.getLogger(__name__)

social_bp = Blueprint('social', __name__)

VERIFIER_COOKIE = 'twitter_code_verifier'
# Edits may set scheduledFor slightly in the past (clock skew, slow forms)
PAST_SCHEDULE_TOLERANCE = timedelta(seconds=60)


def _admin_redirect(**params):
    query = '&'.join(f"{k}={quote(str(v))}" for k, v in params.items())
    return redirect(f"{get_site_url()}/admin/social?{query}")


def _parse_platforms(value):
    """platforms may arrive as a list or as a JSON-encoded string"""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            value = [value] if value else []
    if not isinstance(value, list):
        return []
    return [p for p in value if isinstance(p, str) and p]


# ==========================================
# CONNECTIONS
# ==========================================

@social_bp.route('/connect/<platform>', methods=['GET'])
@token_required
def connect(current_user, platform):
    """
    Start the OAuth flow for a platform

    GET /api/social/connect/twitter
    GET /api/social/connect/twitter?redirect=1
    """
    if platform not in SocialPlatform.ALL:
        return jsonify({'error': f'Unsupported platform: {platform}'}), 400

    try:
        auth_url, state, code_verifier = get_oauth_service().get_auth_url(platform, current_user.id)
    except OAuthError as e:
        return jsonify({'error': e.message}), e.status_code

    if request.args.get('redirect') == '1':
        response = redirect(auth_url)
    else:
        response = make_response(jsonify({'authUrl': auth_url, 'state': state}))

    if code_verifier:
        response.set_cookie(
            VERIFIER_COOKIE,
            code_verifier,
            max_age=600,
            httponly=True,
            secure=current_app.config.get('ENV') == 'production',
            samesite='Lax'
        )
    return response


@social_bp.route('/callback/<platform>', methods=['GET'])
def oauth_callback(platform):
    """
    OAuth callback handler

    GET /api/social/callback/{platform}?code=xxx&state=xxx
    Stores the connection and sends the browser back to the admin panel.
    """
    error = request.args.get('error')
    if error:
        logger.warning(f"OAuth error for {platform}: {error} - {request.args.get('error_description', '')}")
        return _admin_redirect(error=error)

    state_data = OAuthState.validate(request.args.get('state'), platform)
    if not state_data:
        logger.warning(f"Invalid OAuth state for {platform}")
        return _admin_redirect(error='invalid_state')

    code = request.args.get('code')
    if not code:
        return _admin_redirect(error='missing_code')

    service = get_oauth_service()
    try:
        verifier = state_data.get('code_verifier') or request.cookies.get(VERIFIER_COOKIE)
        token_data = service.exchange_code(platform, code, verifier)
        profile = service.get_profile(platform, token_data['access_token'])
    except (OAuthError, requests.RequestException) as e:
        logger.error(f"OAuth exchange failed for {platform}: {e}")
        return _admin_redirect(error=str(e))

    username = profile.get('username')
    expires_in = token_data.get('expires_in')
    expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None

    connection = DBSocialConnection.query.filter_by(platform=platform).first()
    if connection is None:
        connection = DBSocialConnection(platform=platform, access_token=token_data['access_token'])
        db.session.add(connection)
    connection.access_token = token_data['access_token']
    if token_data.get('refresh_token'):
        connection.refresh_token = token_data['refresh_token']
    connection.expires_at = expires_at
    connection.username = username
    connection.profile_image = profile.get('profile_image')
    connection.is_active = True
    connection.updated_at = datetime.utcnow()
    db.session.commit()

    logger.info(f"Connected {platform} account {(username or '').split('|')[0]}")
    response = _admin_redirect(connected=platform)
    response.delete_cookie(VERIFIER_COOKIE)
    return response


@social_bp.route('/connections', methods=['GET'])
@token_required
def list_connections(current_user):
    connections = DBSocialConnection.query.order_by(DBSocialConnection.platform).all()
    return jsonify({'connections': [c.to_dict() for c in connections]})


@social_bp.route('/connections', methods=['DELETE'])
@token_required
def delete_connection(current_user):
    platform = request.args.get('platform')
    if not platform:
        return jsonify({'error': 'Platform is required'}), 400

    connection = DBSocialConnection.query.filter_by(platform=platform).first()
    if not connection:
        return jsonify({'error': 'Connection not found'}), 404

    db.session.delete(connection)
    db.session.commit()
    logger.info(f"Disconnected {platform}")
    return jsonify({'success': True})


# ==========================================
# POSTS
# ==========================================

@social_bp.route('/posts', methods=['GET'])
@token_required
def list_posts(current_user):
    posts = DBSocialPost.query.order_by(DBSocialPost.scheduled_for.desc()).all()
    return jsonify({'posts': [p.to_dict() for p in posts]})


@social_bp.route('/posts', methods=['POST'])
@token_required
def create_post(current_user):
    """
    Schedule a post

    POST /api/social/posts
    {
        "content": "Shipping something new today...",
        "platforms": ["linkedin", "twitter"],
        "scheduledFor": "2026-01-01T09:00:00Z",
        "mediaAssets": [{"type": "image", "url": "/uploads/launch.jpg"}]
    }
    """
    data = request.get_json(silent=True) or {}
    content = data.get('content')
    if not content or not data.get('scheduledFor'):
        return jsonify({'error': 'Content and scheduled date are required'}), 400

    platforms = _parse_platforms(data.get('platforms'))
    if not platforms:
        return jsonify({'error': 'At least one platform is required'}), 400

    scheduled_for = parse_datetime(data['scheduledFor'])
    if not scheduled_for:
        return jsonify({'error': 'Invalid scheduled date'}), 400
    if scheduled_for <= datetime.utcnow():
        return jsonify({'error': 'Scheduled date must be in the future'}), 400

    validation = validate_content(content, platforms)
    if not validation['valid']:
        return jsonify({'error': 'Content validation failed', 'errors': validation['errors']}), 400

    post = DBSocialPost(
        content=content,
        platforms=platforms,
        scheduled_for=scheduled_for,
        media_assets=data.get('mediaAssets'),
        created_by=current_user.id
    )
    db.session.add(post)
    db.session.commit()
    logger.info(f"Post {post.id} scheduled for {scheduled_for.isoformat()} on {', '.join(platforms)}")
    return jsonify({'post': post.to_dict()}), 201


@social_bp.route('/posts/<post_id>', methods=['GET'])
@token_required
def get_post(current_user, post_id):
    post = db.session.get(DBSocialPost, post_id)
    if not post:
        return jsonify({'error': 'Post not found'}), 404
    return jsonify({'post': post.to_dict()})


@social_bp.route('/posts/<post_id>', methods=['PUT'])
@token_required
def update_post(current_user, post_id):
    post = db.session.get(DBSocialPost, post_id)
    if not post:
        return jsonify({'error': 'Post not found'}), 404

    data = request.get_json(silent=True) or {}

    platforms = post.get_platforms()
    if 'platforms' in data:
        platforms = _parse_platforms(data['platforms'])
        if not platforms:
            return jsonify({'error': 'At least one platform is required'}), 400

    content = data['content'] if data.get('content') is not None else post.content
    validation = validate_content(content, platforms)
    if not validation['valid']:
        return jsonify({'error': 'Content validation failed', 'errors': validation['errors']}), 400

    reschedule = False
    if data.get('scheduledFor'):
        scheduled_for = parse_datetime(data['scheduledFor'])
        if not scheduled_for:
            return jsonify({'error': 'Invalid scheduled date'}), 400
        if scheduled_for < datetime.utcnow() - PAST_SCHEDULE_TOLERANCE:
            return jsonify({'error': 'Scheduled date cannot be in the past'}), 400
        post.scheduled_for = scheduled_for
        reschedule = True

    content_changed = content != post.content
    media_changed = 'mediaAssets' in data and (data['mediaAssets'] or []) != post.get_media_assets()

    post.content = content
    post.set_platforms(platforms)
    if 'mediaAssets' in data:
        post.set_media_assets(data['mediaAssets'])

    if reschedule or (post.status == PostStatus.PUBLISHED and (content_changed or media_changed)):
        post.status = PostStatus.SCHEDULED
        post.error_message = None
    elif data.get('status') in (PostStatus.DRAFT, PostStatus.SCHEDULED):
        post.status = data['status']

    post.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'post': post.to_dict()})


@social_bp.route('/posts/<post_id>', methods=['DELETE'])
@token_required
def delete_post(current_user, post_id):
    post = db.session.get(DBSocialPost, post_id)
    if not post:
        return jsonify({'error': 'Post not found'}), 404
    db.session.delete(post)
    db.session.commit()
    return jsonify({'success': True})


# ==========================================
# PUBLISHING
# ==========================================

@social_bp.route('/posts/<post_id>/publish', methods=['POST'])
@admin_required
def publish_now(current_user, post_id):
    """Publish one post immediately, regardless of its schedule"""
    post = db.session.get(DBSocialPost, post_id)
    if not post:
        return jsonify({'error': 'Post not found'}), 404
    if post.status == PostStatus.PUBLISHED and not post.error_message:
        return jsonify({'error': 'Post is already published'}), 400

    platforms = post.get_platforms()
    if not platforms:
        return jsonify({'error': 'Post has no platforms selected'}), 400
    if not get_active_connections(platforms):
        return jsonify({'error': f"No active connections for: {', '.join(platforms)}"}), 400

    result = publish_post(post)
    success = result['published'] > 0
    if success:
        message = f"Published to {result['published']} of {len(platforms)} platform(s)"
    else:
        message = 'Failed to publish to any platform'

    return jsonify({
        'success': success,
        'message': message,
        'post': post.to_dict(),
        'published': result['published'],
        'failed': result['failed'],
        'errors': result['errors']
    })


@social_bp.route('/publish', methods=['POST'])
@cron_or_admin
def publish_due_posts(current_user):
    """
    Publish every scheduled post that is due

    POST /api/social/publish
    Header: X-Cron-Secret: <CRON_SECRET>   (or an admin session)
    """
    result = publish_scheduled_posts()
    return jsonify({'success': True, **result})


@social_bp.route('/linkedin/mentions', methods=['GET'])
@admin_required
def linkedin_mentions(current_user):
    """GET /api/social/linkedin/mentions?keywords=Jane&organizationUrn=urn:li:organization:123"""
    keywords = request.args.get('keywords', '')
    organization_urn = request.args.get('organizationUrn', '')
    if not keywords or not organization_urn:
        return jsonify({'error': 'keywords and organizationUrn are required'}), 400

    reason = linkedin.validate_search_keywords(keywords)
    if reason:
        return jsonify({'error': 'Invalid search query', 'details': reason}), 400

    connection = get_active_connections([SocialPlatform.LINKEDIN]).get(SocialPlatform.LINKEDIN)
    if not connection:
        return jsonify({'error': 'LinkedIn is not connected'}), 404

    try:
        people = linkedin.search_people(ensure_valid_token(connection), keywords, organization_urn)
    except (SocialPublishError, requests.RequestException) as e:
        logger.error(f"LinkedIn mention search failed: {e}")
        return jsonify({'error': str(e)}), 502

    return jsonify({'results': people})
