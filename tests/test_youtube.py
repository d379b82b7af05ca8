"""
Brand Studio - YouTube Media Tests
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from app.database import db
from app.models.db_models import DBYouTubeVideo
from app.services.youtube_service import (
    YouTubeError, YouTubeService, best_thumbnail, get_site_config, is_short, parse_duration
)


def _response(data, ok=True, status_code=200):
    response = MagicMock(ok=ok, status_code=status_code)
    response.json.return_value = data
    return response


def _video(video_id, title, duration, published='2026-01-05T10:00:00Z'):
    return {
        'id': video_id,
        'snippet': {
            'title': title,
            'description': f'{title} description',
            'publishedAt': published,
            'channelTitle': 'Brand Channel',
            'thumbnails': {'high': {'url': f'https://img.test/{video_id}/high.jpg'}}
        },
        'contentDetails': {'duration': duration},
        'statistics': {'viewCount': '1200', 'likeCount': '33'}
    }


def fake_youtube_api(url, params=None, timeout=None):
    endpoint = url.rsplit('/', 1)[1]
    if endpoint == 'channels':
        return _response({'items': [{'id': 'UC123'}]})
    if endpoint == 'search':
        if params.get('type') == 'channel':
            return _response({'items': []})
        if params['videoDuration'] == 'medium':
            return _response({'items': [{'id': {'videoId': 'v1'}}, {'id': {'videoId': 'v2'}}]})
        return _response({'items': [{'id': {'videoId': 'v2'}}, {'id': {'videoId': 'v3'}}]})
    if endpoint == 'videos':
        assert params['id'] == 'v1,v2,v3'
        return _response({'items': [
            _video('v1', 'Long form interview', 'PT12M30S'),
            _video('v2', 'Quick tip', 'PT45S'),
            _video('v3', 'Studio tour #Shorts', 'PT2M'),
        ]})
    raise AssertionError(f'unexpected endpoint {endpoint}')


class TestHelpers:

    @pytest.mark.parametrize('value,expected', [
        ('PT1H2M3S', 3723),
        ('PT15M', 900),
        ('PT45S', 45),
        ('P1D', 0),
        ('', 0),
        (None, 0),
    ])
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    def test_best_thumbnail(self):
        thumbnails = {
            'default': {'url': 'd.jpg'},
            'high': {'url': 'h.jpg'},
            'standard': {'url': 's.jpg'},
        }
        assert best_thumbnail(thumbnails) == 's.jpg'
        assert best_thumbnail({}) == ''
        assert best_thumbnail(None) == ''

    def test_is_short(self):
        assert is_short('Anything', 60) is True
        assert is_short('My #SHORTS video', 600) is True
        assert is_short('Full episode', 61) is False

    def test_site_config_defaults(self, app):
        config = get_site_config()
        assert config.id == 'site'
        assert config.cron_schedule == '0 2 * * *'
        assert get_site_config() is config


class TestFetch:

    def test_not_configured(self, app):
        with pytest.raises(YouTubeError) as exc:
            YouTubeService().resolve_channel_id('@brand')
        assert exc.value.status_code == 500

    @patch('app.services.youtube_service.requests.get', side_effect=fake_youtube_api)
    def test_fetch_replaces_stored_videos(self, mock_get, app, monkeypatch):
        monkeypatch.setenv('YOUTUBE_API_KEY', 'yt-key')
        monkeypatch.setenv('YOUTUBE_CHANNEL_HANDLE', '@brand')
        db.session.add(DBYouTubeVideo('old', 'Old video'))
        db.session.commit()

        videos = YouTubeService().fetch_videos()

        assert [v.video_id for v in videos] == ['v1']
        stored = DBYouTubeVideo.query.one()
        assert stored.video_id == 'v1'
        assert stored.duration_seconds == 750
        assert stored.view_count == 1200
        assert stored.thumbnail_url == 'https://img.test/v1/high.jpg'
        assert stored.published_at == datetime(2026, 1, 5, 10, 0)

        config = get_site_config()
        assert config.youtube_channel_id == 'UC123'
        assert config.last_video_fetch is not None

    @patch('app.services.youtube_service.requests.get')
    def test_unknown_handle(self, mock_get, app, monkeypatch):
        monkeypatch.setenv('YOUTUBE_API_KEY', 'yt-key')
        monkeypatch.setenv('YOUTUBE_CHANNEL_HANDLE', '@nobody')
        mock_get.return_value = _response({'items': []})

        with pytest.raises(YouTubeError) as exc:
            YouTubeService().fetch_videos()
        assert exc.value.status_code == 404


class TestMediaRoutes:

    def test_public_video_list(self, client):
        db.session.add_all([
            DBYouTubeVideo('a', 'Older', published_at=datetime(2025, 1, 1)),
            DBYouTubeVideo('b', 'Newer', published_at=datetime(2026, 1, 1)),
        ])
        db.session.commit()

        data = client.get('/api/youtube/videos').get_json()

        assert [v['videoId'] for v in data['videos']] == ['b', 'a']
        assert data['videos'][0]['url'] == 'https://www.youtube.com/watch?v=b'
        assert data['lastFetch'] is None

    def test_fetch_not_configured(self, client, auth_headers, monkeypatch):
        monkeypatch.delenv('YOUTUBE_CHANNEL_HANDLE', raising=False)
        response = client.post('/api/youtube/fetch', headers=auth_headers)
        assert response.status_code == 500

    def test_config_requires_admin(self, client, editor_headers):
        assert client.get('/api/youtube/config', headers=editor_headers).status_code == 403

    def test_update_schedule(self, client, auth_headers):
        assert client.put('/api/youtube/config', headers=auth_headers,
                          json={'cronSchedule': '* * *'}).status_code == 400
        assert client.put('/api/youtube/config', headers=auth_headers,
                          json={'cronSchedule': '61 * * * *'}).status_code == 400

        response = client.put('/api/youtube/config', headers=auth_headers,
                              json={'cronSchedule': '0  4 * * 1', 'youtubeChannelId': 'UC999'})

        config = response.get_json()['config']
        assert config['cronSchedule'] == '0 4 * * 1'
        assert config['youtubeChannelId'] == 'UC999'

    def test_clear_videos(self, client, auth_headers):
        db.session.add(DBYouTubeVideo('a', 'Video'))
        db.session.commit()

        assert client.delete('/api/youtube/videos', headers=auth_headers).get_json()['deleted'] == 1
        assert DBYouTubeVideo.query.count() == 0
