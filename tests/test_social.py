"""
Brand Studio - Social Publishing Tests
"""
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.database import db
from app.models.db_models import DBSocialConnection, DBSocialPost, PostStatus
from app.services.oauth_service import OAuthState
from app.services.platforms import SocialPublishError, split_media
from app.services.platforms import instagram, linkedin, threads, twitter
from app.services.social_service import (
    validate_content, publish_post, publish_scheduled_posts, ensure_valid_token, is_token_expired
)


def _future(hours=1):
    return datetime.utcnow() + timedelta(hours=hours)


def _api_response(data, ok=True, status_code=200):
    response = MagicMock(ok=ok, status_code=status_code, text=str(data))
    response.json.return_value = data
    return response


def _connection(platform, expires_in=timedelta(days=30), **kwargs):
    connection = DBSocialConnection(platform=platform, access_token=f'{platform}-token',
                                    expires_at=datetime.utcnow() + expires_in, **kwargs)
    db.session.add(connection)
    db.session.commit()
    return connection


class TestContentRules:

    def test_validate_content(self):
        assert validate_content('short', ['twitter', 'linkedin'])['valid'] is True

        result = validate_content('x' * 300, ['twitter', 'linkedin'])
        assert result['valid'] is False
        assert result['errors'] == ['twitter: Content exceeds 280 characters']

    def test_unknown_platform_default_limit(self):
        assert validate_content('x' * 1001, ['myspace'])['valid'] is False

    def test_split_media(self):
        images, videos = split_media([
            {'type': 'image', 'url': '/a.jpg'}, {'type': 'video', 'url': '/b.mp4'}, {'type': 'image'}
        ])
        assert images == ['/a.jpg']
        assert videos == ['/b.mp4']

    def test_token_expiry(self):
        assert is_token_expired(None) is True
        assert is_token_expired(datetime.utcnow() + timedelta(minutes=2), timedelta(minutes=5)) is True
        assert is_token_expired(datetime.utcnow() + timedelta(hours=1), timedelta(minutes=5)) is False


class TestLinkedIn:

    def test_escape_commentary_keeps_mentions(self):
        text = 'Launch (beta) with @[Ada Lovelace](urn:li:person:abc) *today*'
        assert linkedin.escape_commentary(text) == (
            'Launch \\(beta\\) with @[Ada Lovelace](urn:li:person:abc) \\*today\\*'
        )

    def test_escape_commentary_length(self):
        with pytest.raises(SocialPublishError):
            linkedin.escape_commentary('(' * 1600)

    def test_extract_post_id(self):
        assert linkedin.extract_post_id('urn:li:share:123') == '123'
        assert linkedin.extract_post_id('urn:li:ugcPost:9') == '9'
        assert linkedin.extract_post_id('plain') == 'plain'

    def test_search_keywords(self):
        assert linkedin.validate_search_keywords('Ada') is None
        assert linkedin.validate_search_keywords('Ada Lovelace') is None
        assert linkedin.validate_search_keywords('ab') is not None
        assert linkedin.validate_search_keywords('Ada1') is not None
        assert linkedin.validate_search_keywords('Ada  Lovelace') is not None
        assert linkedin.validate_search_keywords('A B C') is not None
        assert linkedin.validate_search_keywords('A. B') is not None

    def test_post_body_media(self):
        single = linkedin.build_post_body('urn:li:person:1', 'hi', ['urn:li:image:1'])
        multi = linkedin.build_post_body('urn:li:person:1', 'hi', ['urn:li:image:1', 'urn:li:image:2'])
        video = linkedin.build_post_body('urn:li:person:1', 'hi', video_urn='urn:li:video:1')

        assert single['content']['media']['id'] == 'urn:li:image:1'
        assert len(multi['content']['multiImage']['images']) == 2
        assert video['content']['media']['id'] == 'urn:li:video:1'
        assert 'content' not in linkedin.build_post_body('urn:li:person:1', 'hi')

    @patch('app.services.platforms.linkedin.requests.post')
    def test_comment_on_post(self, mock_post):
        mock_post.return_value = _api_response({'id': 'comment-1'}, status_code=201)

        result = linkedin.comment_on_post('token', 'urn:li:share:123', 'urn:li:person:abc', 'Great point')

        assert result == {'id': 'comment-1'}
        assert mock_post.call_args.args[0] == (
            'https://api.linkedin.com/rest/socialActions/urn%3Ali%3Ashare%3A123/comments'
        )
        assert mock_post.call_args.kwargs['json'] == {
            'actor': 'urn:li:person:abc', 'object': 'urn:li:share:123', 'message': {'text': 'Great point'}
        }
        assert mock_post.call_args.kwargs['headers']['Linkedin-Version'] == linkedin.LINKEDIN_VERSION

    @patch('app.services.platforms.linkedin.requests.post')
    def test_comment_failure(self, mock_post):
        mock_post.return_value = _api_response({}, ok=False, status_code=422)

        with pytest.raises(SocialPublishError) as exc:
            linkedin.comment_on_post('token', 'urn:li:share:123', 'urn:li:person:abc', 'Great point')
        assert exc.value.status_code == 422


class TestTwitter:

    def test_validate_media(self):
        with pytest.raises(SocialPublishError):
            twitter.validate_media([{'type': 'image', 'url': '/a.jpg'}, {'type': 'video', 'url': '/b.mp4'}])
        with pytest.raises(SocialPublishError):
            twitter.validate_media([{'type': 'image', 'url': f'/{i}.jpg'} for i in range(5)])
        twitter.validate_media([{'type': 'image', 'url': '/a.jpg'}])

    def test_publish_rejects_long_text(self):
        result = twitter.publish('x' * 281, 'token')
        assert result['success'] is False

    @patch('app.services.platforms.twitter.requests.post')
    def test_publish_text(self, mock_post):
        mock_post.return_value = MagicMock(ok=True, status_code=201)
        mock_post.return_value.json.return_value = {'data': {'id': '1789'}}

        result = twitter.publish('Hello world', 'token')

        assert result == {'success': True, 'post_id': '1789', 'error': None}
        assert mock_post.call_args.kwargs['json'] == {'text': 'Hello world'}

    @patch('app.services.platforms.twitter.requests.post')
    def test_publish_forbidden(self, mock_post):
        mock_post.return_value = MagicMock(ok=False, status_code=403)

        result = twitter.publish('Hello world', 'token')
        assert result['error'] == twitter.PERMISSION_DENIED

    @patch('app.services.platforms.twitter.requests.post')
    def test_reply_to_tweet(self, mock_post):
        mock_post.return_value = _api_response({'data': {'id': '1790'}}, status_code=201)

        assert twitter.reply_to_tweet('token', '1789', 'Thanks!') == '1790'
        assert mock_post.call_args.kwargs['json'] == {
            'text': 'Thanks!', 'reply': {'in_reply_to_tweet_id': '1789'}
        }

    @patch('app.services.platforms.twitter.requests.post')
    def test_reply_errors(self, mock_post):
        with pytest.raises(SocialPublishError):
            twitter.reply_to_tweet('token', '1789', 'x' * 281)
        mock_post.assert_not_called()

        mock_post.return_value = _api_response({}, ok=False, status_code=403)
        with pytest.raises(SocialPublishError) as exc:
            twitter.reply_to_tweet('token', '1789', 'Thanks!')
        assert exc.value.status_code == 403


class TestInstagram:

    def test_requires_image(self):
        result = instagram.publish('Caption', 'token', media_assets=[{'type': 'video', 'url': '/v.mp4'}])
        assert result == {'success': False, 'post_id': None, 'error': 'Instagram requires at least one image'}

    @patch('app.services.platforms.instagram.requests.get')
    def test_account_id_from_connection(self, mock_get):
        connection = SimpleNamespace(username='brand|17841400000|1020')

        assert instagram.get_account_id('token', connection) == '17841400000'
        mock_get.assert_not_called()

    @patch('app.services.platforms.instagram.requests.get')
    def test_account_id_lookup(self, mock_get):
        mock_get.return_value = _api_response({'id': '1020', 'instagram_business_account': {'id': '17841400001'}})

        assert instagram.get_account_id('token', SimpleNamespace(username='brand')) == '17841400001'
        assert mock_get.call_args.args[0].endswith('/me')
        assert mock_get.call_args.kwargs['params']['fields'] == 'id,instagram_business_account{id}'

    @patch('app.services.platforms.instagram.requests.get')
    def test_account_id_missing(self, mock_get):
        mock_get.return_value = _api_response({'id': '1020'})

        with pytest.raises(SocialPublishError, match='No Instagram Business account'):
            instagram.get_account_id('token', None)

    @patch('app.services.platforms.instagram.time.sleep')
    @patch('app.services.platforms.instagram.requests.get')
    @patch('app.services.platforms.instagram.requests.post')
    def test_publish_waits_for_container(self, mock_post, mock_get, mock_sleep, app):
        mock_post.side_effect = [_api_response({'id': 'container-1'}), _api_response({'id': 'media-1'})]
        mock_get.side_effect = [_api_response({'status_code': 'IN_PROGRESS'}),
                                _api_response({'status_code': 'FINISHED'})]

        result = instagram.publish('x' * 2500, 'token', SimpleNamespace(username='brand|1784|1020'),
                                   [{'type': 'image', 'url': '/uploads/a.jpg'}])

        assert result == {'success': True, 'post_id': 'media-1', 'error': None}
        container_body = mock_post.call_args_list[0].kwargs['json']
        assert container_body['image_url'] == 'https://example.com/uploads/a.jpg'
        assert len(container_body['caption']) == 2200
        assert mock_post.call_args_list[1].kwargs['json'] == {'creation_id': 'container-1'}
        mock_sleep.assert_called_once_with(instagram.POLL_INTERVAL)

    @patch('app.services.platforms.instagram.requests.get')
    @patch('app.services.platforms.instagram.requests.post')
    def test_container_error_fails_publish(self, mock_post, mock_get):
        mock_post.return_value = _api_response({'id': 'container-1'})
        mock_get.return_value = _api_response({'status_code': 'ERROR'})

        result = instagram.publish('Caption', 'token', SimpleNamespace(username='brand|1784|1020'),
                                   [{'type': 'image', 'url': 'https://cdn.test/a.jpg'}])

        assert result['success'] is False
        assert result['error'] == 'Media container failed to process. Status: ERROR'
        assert mock_post.call_count == 1

    @patch('app.services.platforms.instagram.requests.get')
    def test_container_expired(self, mock_get):
        mock_get.return_value = _api_response({'status_code': 'EXPIRED'})

        with pytest.raises(SocialPublishError, match='expired'):
            instagram.wait_for_container('token', 'container-1')

    @patch('app.services.platforms.instagram.time.sleep')
    @patch('app.services.platforms.instagram.requests.get')
    def test_container_timeout(self, mock_get, mock_sleep):
        mock_get.return_value = _api_response({'status_code': 'IN_PROGRESS'})

        with pytest.raises(SocialPublishError, match='Timed out'):
            instagram.wait_for_container('token', 'container-1', timeout=0)
        mock_sleep.assert_not_called()


class TestThreads:

    @pytest.fixture(autouse=True)
    def no_override(self, monkeypatch):
        monkeypatch.delenv('THREADS_USER_ACCESS_TOKEN', raising=False)

    @patch('app.services.platforms.threads.requests.get')
    def test_override_token(self, mock_get, monkeypatch):
        monkeypatch.setenv('THREADS_USER_ACCESS_TOKEN', 'override-token')
        mock_get.return_value = _api_response({'id': 25000000001, 'username': 'brand'})

        assert threads.resolve_credentials('stored-token', None) == ('override-token', '25000000001')
        assert mock_get.call_args.args[0].endswith('/me')
        assert mock_get.call_args.kwargs['params']['access_token'] == 'override-token'

    def test_stored_account_id(self):
        connection = SimpleNamespace(username='brand|25000000001')
        assert threads.resolve_credentials('stored-token', connection) == ('stored-token', '25000000001')

    @patch('app.services.platforms.threads.requests.post')
    def test_non_numeric_account_id(self, mock_post):
        result = threads.publish('Hello', 'token', SimpleNamespace(username='brand|brand'))

        assert result['success'] is False
        assert 'Invalid Threads account ID format: brand' in result['error']
        mock_post.assert_not_called()

    def test_container_params(self, app):
        assert threads.build_container_params('x' * 600) == {'media_type': 'TEXT', 'text': 'x' * 500}
        assert threads.build_container_params('Hi', [{'type': 'image', 'url': '/uploads/a.jpg'}]) == {
            'media_type': 'IMAGE', 'image_url': 'https://example.com/uploads/a.jpg', 'text': 'Hi'
        }
        assert threads.build_container_params('Hi', [{'type': 'video', 'url': 'https://cdn.test/v.mp4'}]) == {
            'media_type': 'VIDEO', 'video_url': 'https://cdn.test/v.mp4', 'text': 'Hi'
        }

    @patch('app.services.platforms.threads.requests.post')
    def test_publish(self, mock_post):
        mock_post.side_effect = [_api_response({'id': 'creation-1'}), _api_response({'id': 'thread-1'})]

        result = threads.publish('Hello', 'token', SimpleNamespace(username='brand|25000000001'))

        assert result == {'success': True, 'post_id': 'thread-1', 'error': None}
        create, publish = mock_post.call_args_list
        assert create.args[0].endswith('/25000000001/threads')
        assert create.kwargs['params'] == {'media_type': 'TEXT', 'text': 'Hello'}
        assert publish.kwargs['params'] == {'creation_id': 'creation-1'}
        assert publish.kwargs['headers']['Authorization'] == 'Bearer token'

    @patch('app.services.platforms.threads.requests.post')
    def test_publish_missing_id(self, mock_post):
        mock_post.side_effect = [_api_response({'id': 'creation-1'}), _api_response({})]

        result = threads.publish('Hello', 'token', SimpleNamespace(username='brand|25000000001'))
        assert result['error'] == 'Threads API returned success but no post ID in response'


class TestPublisher:

    @patch('app.services.social_service.publish_to_platform')
    def test_partial_success_is_published(self, mock_publish, app):
        _connection('linkedin')
        _connection('twitter')
        mock_publish.side_effect = [
            {'success': True, 'post_id': 'li-1', 'error': None},
            {'success': False, 'post_id': None, 'error': 'rate limited'},
        ]
        post = DBSocialPost('Hello', ['linkedin', 'twitter'], _future())
        db.session.add(post)
        db.session.commit()

        result = publish_post(post)

        assert result == {'published': 1, 'failed': 1, 'errors': ['twitter: rate limited']}
        assert post.status == PostStatus.PUBLISHED
        assert list(post.get_published_on()) == ['linkedin']
        assert post.error_message == 'twitter: rate limited'

    @patch('app.services.social_service.publish_to_platform')
    def test_missing_connection_fails(self, mock_publish, app):
        post = DBSocialPost('Hello', ['threads'], _future())
        db.session.add(post)
        db.session.commit()

        result = publish_post(post)

        assert result['published'] == 0
        assert post.status == PostStatus.FAILED
        assert post.error_message == 'threads: No active connection'
        mock_publish.assert_not_called()

    @patch('app.services.social_service.publish_to_platform')
    def test_only_due_posts_run(self, mock_publish, app):
        _connection('linkedin')
        mock_publish.return_value = {'success': True, 'post_id': 'x', 'error': None}
        due = DBSocialPost('Due', ['linkedin'], datetime.utcnow() - timedelta(minutes=1))
        later = DBSocialPost('Later', ['linkedin'], _future())
        draft = DBSocialPost('Draft', ['linkedin'], datetime.utcnow() - timedelta(minutes=1),
                             status=PostStatus.DRAFT)
        db.session.add_all([due, later, draft])
        db.session.commit()

        result = publish_scheduled_posts()

        assert result == {'published': 1, 'failed': 0, 'total': 1}
        assert due.status == PostStatus.PUBLISHED
        assert later.status == PostStatus.SCHEDULED
        assert draft.status == PostStatus.DRAFT

    @patch('app.services.social_service.get_oauth_service')
    def test_refresh_inside_window(self, mock_get, app):
        connection = _connection('twitter', expires_in=timedelta(minutes=2), refresh_token='r1')
        mock_get.return_value.refresh_token.return_value = {
            'access_token': 'fresh', 'refresh_token': 'r2', 'expires_in': 7200
        }

        assert ensure_valid_token(connection) == 'fresh'
        assert connection.refresh_token == 'r2'
        assert connection.expires_at > datetime.utcnow() + timedelta(hours=1)

    @patch('app.services.social_service.get_oauth_service')
    def test_valid_token_not_refreshed(self, mock_get, app):
        connection = _connection('linkedin', refresh_token='r1')

        assert ensure_valid_token(connection) == 'linkedin-token'
        mock_get.assert_not_called()


class TestSocialRoutes:

    def test_create_post(self, client, auth_headers):
        response = client.post('/api/social/posts', headers=auth_headers, json={
            'content': 'Shipping today',
            'platforms': '["linkedin"]',
            'scheduledFor': _future().isoformat() + 'Z'
        })

        assert response.status_code == 201
        assert response.get_json()['post']['platforms'] == ['linkedin']

    def test_create_post_validation(self, client, auth_headers):
        past = client.post('/api/social/posts', headers=auth_headers, json={
            'content': 'Late', 'platforms': ['linkedin'],
            'scheduledFor': (datetime.utcnow() - timedelta(hours=1)).isoformat()
        })
        assert past.status_code == 400

        too_long = client.post('/api/social/posts', headers=auth_headers, json={
            'content': 'x' * 300, 'platforms': ['twitter'], 'scheduledFor': _future().isoformat()
        })
        assert too_long.status_code == 400
        assert too_long.get_json()['errors'] == ['twitter: Content exceeds 280 characters']

        no_platforms = client.post('/api/social/posts', headers=auth_headers, json={
            'content': 'Hi', 'platforms': [], 'scheduledFor': _future().isoformat()
        })
        assert no_platforms.status_code == 400

    def test_edit_published_post_reschedules(self, client, auth_headers, app):
        post = DBSocialPost('Old', ['linkedin'], datetime.utcnow() - timedelta(days=1),
                            status=PostStatus.PUBLISHED)
        db.session.add(post)
        db.session.commit()

        response = client.put(f'/api/social/posts/{post.id}', headers=auth_headers, json={'content': 'New'})

        assert response.get_json()['post']['status'] == PostStatus.SCHEDULED

    def test_publish_now_needs_connection(self, client, auth_headers, app):
        post = DBSocialPost('Hi', ['linkedin'], _future())
        db.session.add(post)
        db.session.commit()

        response = client.post(f'/api/social/posts/{post.id}/publish', headers=auth_headers)
        assert response.status_code == 400

    def test_connect_twitter_sets_verifier(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv('TWITTER_CLIENT_ID', 'tw-id')
        monkeypatch.setenv('TWITTER_CLIENT_SECRET', 'tw-secret')

        response = client.get('/api/social/connect/twitter', headers=auth_headers)

        data = response.get_json()
        assert data['authUrl'].startswith('https://twitter.com/i/oauth2/authorize?')
        assert 'code_challenge_method=S256' in data['authUrl']
        assert 'twitter_code_verifier=' in response.headers.get('Set-Cookie', '')

    def test_connect_unknown_platform(self, client, auth_headers):
        assert client.get('/api/social/connect/myspace', headers=auth_headers).status_code == 400

    def test_callback_invalid_state(self, client):
        response = client.get('/api/social/callback/linkedin?code=abc&state=bogus')

        assert response.status_code == 302
        assert response.headers['Location'] == 'https://example.com/admin/social?error=invalid_state'

    @patch('app.routes.social.get_oauth_service')
    def test_callback_stores_connection(self, mock_get, client, app):
        state = OAuthState.generate('user_1', 'linkedin')
        service = mock_get.return_value
        service.exchange_code.return_value = {'access_token': 'li-access', 'refresh_token': 'li-refresh',
                                              'expires_in': 3600}
        service.get_profile.return_value = {'username': 'Ada Lovelace', 'profile_image': None}

        response = client.get(f'/api/social/callback/linkedin?code=abc&state={state}')

        assert response.headers['Location'] == 'https://example.com/admin/social?connected=linkedin'
        connection = DBSocialConnection.query.filter_by(platform='linkedin').one()
        assert connection.access_token == 'li-access'
        assert connection.refresh_token == 'li-refresh'
        assert connection.username == 'Ada Lovelace'

        # State is single use
        again = client.get(f'/api/social/callback/linkedin?code=abc&state={state}')
        assert 'invalid_state' in again.headers['Location']

    def test_mentions_bad_query(self, client, auth_headers):
        response = client.get('/api/social/linkedin/mentions?keywords=a1&organizationUrn=urn:li:organization:1',
                              headers=auth_headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid search query'
