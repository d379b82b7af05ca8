"""
Brand Studio - YouTube Service
Pulls the channel's long-form videos for the public media page
"""
import os
import re
import logging
import requests
from datetime import datetime
from typing import Dict, List, Optional

from app.database import db
from app.models.db_models import DBSiteConfig, DBYouTubeVideo
from app.utils import parse_datetime, safe_int

logger = logging.getLogger(__name__)

API_BASE = 'https://www.googleapis.com/youtube/v3'
DURATIONS = ('medium', 'long')
PAGES_PER_DURATION = 2
MAX_RESULTS = 50
SHORTS_MAX_SECONDS = 60
THUMBNAIL_ORDER = ('maxres', 'standard', 'high', 'medium', 'default')

ISO_DURATION = re.compile(r'^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$')


class YouTubeError(Exception):
    """YouTube Data API error"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_duration(value: Optional[str]) -> int:
    """PT#H#M#S to seconds; 0 for anything else"""
    match = ISO_DURATION.match(value or '')
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def best_thumbnail(thumbnails: Dict) -> str:
    for size in THUMBNAIL_ORDER:
        url = (thumbnails or {}).get(size, {}).get('url')
        if url:
            return url
    return ''


def is_short(title: str, duration_seconds: int) -> bool:
    return duration_seconds <= SHORTS_MAX_SECONDS or 'shorts' in (title or '').lower()


def get_site_config() -> DBSiteConfig:
    """The single site settings row, created on first use"""
    config = db.session.get(DBSiteConfig, 'site')
    if config is None:
        config = DBSiteConfig()
        db.session.add(config)
        db.session.commit()
    return config


class YouTubeService:
    """YouTube Data API v3 client"""

    @property
    def api_key(self):
        return os.getenv('YOUTUBE_API_KEY', '')

    @property
    def channel_handle(self):
        return os.getenv('YOUTUBE_CHANNEL_HANDLE', '')

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get(self, path: str, params: Dict) -> requests.Response:
        if not self.api_key:
            raise YouTubeError('YOUTUBE_API_KEY is not configured', status_code=500)
        return requests.get(f'{API_BASE}/{path}', params={**params, 'key': self.api_key}, timeout=30)

    def resolve_channel_id(self, handle: str) -> Optional[str]:
        """channels?forHandle first, then a channel search"""
        try:
            response = self._get('channels', {'part': 'id', 'forHandle': handle.lstrip('@')})
            if response.ok and response.json().get('items'):
                return response.json()['items'][0]['id']
        except requests.RequestException as e:
            logger.warning(f"forHandle lookup failed for {handle}: {e}")

        response = self._get('search', {'part': 'snippet', 'q': handle, 'type': 'channel', 'maxResults': 1})
        if not response.ok:
            raise YouTubeError(f'Failed to fetch channel: {response.status_code}')
        items = response.json().get('items') or []
        return items[0]['snippet']['channelId'] if items else None

    def search_video_ids(self, channel_id: str) -> List[str]:
        """Ids of medium and long uploads, de-duplicated in order"""
        ids = []
        for duration in DURATIONS:
            page_token = None
            for _ in range(PAGES_PER_DURATION):
                params = {
                    'part': 'snippet',
                    'channelId': channel_id,
                    'type': 'video',
                    'order': 'date',
                    'maxResults': MAX_RESULTS,
                    'videoDuration': duration
                }
                if page_token:
                    params['pageToken'] = page_token
                response = self._get('search', params)
                if not response.ok:
                    logger.warning(f"YouTube search ({duration}) failed: {response.status_code}")
                    break
                data = response.json()
                items = data.get('items') or []
                if not items:
                    break
                ids.extend(item['id']['videoId'] for item in items if item.get('id', {}).get('videoId'))
                page_token = data.get('nextPageToken')
                if not page_token:
                    break
        return list(dict.fromkeys(ids))

    def get_video_details(self, video_ids: List[str]) -> List[Dict]:
        response = self._get('videos', {
            'part': 'snippet,contentDetails,statistics',
            'id': ','.join(video_ids[:MAX_RESULTS])
        })
        if not response.ok:
            raise YouTubeError(f'Failed to fetch video details: {response.status_code}')
        return response.json().get('items') or []

    def fetch_videos(self) -> List[DBYouTubeVideo]:
        """Refresh the stored video list from the channel"""
        config = get_site_config()
        channel_id = config.youtube_channel_id

        if not channel_id:
            if not self.channel_handle:
                raise YouTubeError('YOUTUBE_CHANNEL_HANDLE is not configured', status_code=500)
            channel_id = self.resolve_channel_id(self.channel_handle)
            if not channel_id:
                raise YouTubeError(f'Could not find channel ID for handle: {self.channel_handle}', status_code=404)
            config.youtube_channel_id = channel_id
            db.session.commit()

        channel = self._get('channels', {'part': 'contentDetails', 'id': channel_id})
        if not channel.ok:
            raise YouTubeError(f'Failed to fetch channel details: {channel.status_code}')
        if not channel.json().get('items'):
            raise YouTubeError('Channel not found or has no content', status_code=404)

        video_ids = self.search_video_ids(channel_id)
        items = self.get_video_details(video_ids) if video_ids else []

        videos = []
        for item in items:
            snippet = item.get('snippet') or {}
            stats = item.get('statistics') or {}
            seconds = parse_duration((item.get('contentDetails') or {}).get('duration'))
            title = snippet.get('title', '')
            if is_short(title, seconds):
                continue
            videos.append(DBYouTubeVideo(
                video_id=item['id'],
                title=title,
                description=snippet.get('description'),
                thumbnail_url=best_thumbnail(snippet.get('thumbnails')),
                published_at=parse_datetime(snippet.get('publishedAt')),
                duration_seconds=seconds,
                view_count=safe_int(stats.get('viewCount'), 0),
                like_count=safe_int(stats.get('likeCount'), 0),
                channel_title=snippet.get('channelTitle')
            ))

        DBYouTubeVideo.query.delete()
        db.session.add_all(videos)
        config.last_video_fetch = datetime.utcnow()
        db.session.commit()

        logger.info(f"Fetched {len(videos)} YouTube videos ({len(items) - len(videos)} shorts skipped)")
        return videos


# Singleton instance
_youtube_service = None


def get_youtube_service() -> YouTubeService:
    """Get or create YouTube service instance"""
    global _youtube_service
    if _youtube_service is None:
        _youtube_service = YouTubeService()
    return _youtube_service
