"""
Brand Studio - Media Routes
YouTube video list for the public media page and its fetch settings
"""
from flask import Blueprint, request, jsonify
from datetime import datetime
import logging

import requests

from app.database import db
from app.models.db_models import DBYouTubeVideo
from app.routes.auth import token_required, admin_required
from app.services import scheduler_service
from app.services.youtube_service import get_youtube_service, get_site_config, YouTubeError

logger = logging.getLogger(__name__)

media_bp = Blueprint('media', __name__)


@media_bp.route('/videos', methods=['GET'])
def list_videos():
    """Public: stored channel videos, newest first"""
    videos = DBYouTubeVideo.query.order_by(DBYouTubeVideo.published_at.desc().nullslast()).all()
    config = get_site_config()
    return jsonify({
        'videos': [v.to_dict() for v in videos],
        'lastFetch': config.last_video_fetch.isoformat() if config.last_video_fetch else None
    })


@media_bp.route('/videos', methods=['DELETE'])
@admin_required
def clear_videos(current_user):
    deleted = DBYouTubeVideo.query.delete()
    db.session.commit()
    logger.info(f"{current_user.email} cleared {deleted} stored videos")
    return jsonify({'success': True, 'deleted': deleted})


@media_bp.route('/fetch', methods=['POST'])
@token_required
def fetch_videos(current_user):
    try:
        videos = get_youtube_service().fetch_videos()
    except YouTubeError as e:
        db.session.rollback()
        logger.error(f"YouTube fetch failed: {e.message}")
        return jsonify({'error': e.message}), e.status_code
    except requests.RequestException as e:
        db.session.rollback()
        logger.error(f"YouTube fetch failed: {e}")
        return jsonify({'error': f'Failed to fetch videos: {e}'}), 502

    return jsonify({'success': True, 'count': len(videos), 'videos': [v.to_dict() for v in videos]})


@media_bp.route('/config', methods=['GET'])
@admin_required
def get_config(current_user):
    config = get_site_config()
    service = get_youtube_service()
    return jsonify({
        'config': config.to_dict(),
        'apiKeyConfigured': service.is_configured(),
        'channelHandle': service.channel_handle or None
    })


@media_bp.route('/config', methods=['PUT'])
@admin_required
def update_config(current_user):
    """
    Change the fetch schedule

    PUT /api/youtube/config
    {"cronSchedule": "0 2 * * *"}
    """
    data = request.get_json(silent=True) or {}
    schedule = data.get('cronSchedule')
    if not isinstance(schedule, str) or not schedule.strip():
        return jsonify({'error': 'cronSchedule is required'}), 400

    schedule = ' '.join(schedule.split())
    try:
        scheduler_service.cron_trigger(schedule)
    except ValueError as e:
        return jsonify({'error': f'Invalid cron schedule: {e}'}), 400

    config = get_site_config()
    config.cron_schedule = schedule
    if 'youtubeChannelId' in data:
        config.youtube_channel_id = data['youtubeChannelId'] or None
    config.updated_at = datetime.utcnow()
    db.session.commit()

    scheduler_service.reschedule_job('youtube', schedule)
    return jsonify({'success': True, 'config': config.to_dict()})
