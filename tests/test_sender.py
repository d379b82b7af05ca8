"""
Brand Studio - Sender.net Service Tests
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from app.database import db
from app.models.db_models import DBSubscriber
from app.services.sender_service import (
    SenderService, SenderError, ensure_unsubscribe_link, map_sender_status,
    campaign_fields_from_remote, sync_message
)


def _response(status=200, data=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.content = b'{}' if data is not None else b''
    response.json.return_value = data
    response.text = str(data)
    return response


@pytest.fixture
def sender(monkeypatch):
    monkeypatch.setenv('SENDER_API_KEY', 'test-key')
    monkeypatch.setenv('SENDER_LIST_ID', 'list-1')
    service = SenderService()
    service.page_delay = 0
    return service


class TestHelpers:

    def test_unsubscribe_link_added_before_body_close(self):
        html = ensure_unsubscribe_link('<html><body><p>Hi</p></body></html>')
        assert html.index('{{unsubscribe_link}}') < html.index('</body>')

    def test_unsubscribe_link_not_duplicated(self):
        html = '<p>Hi</p><a href="{{unsubscribe_link}}">x</a>'
        assert ensure_unsubscribe_link(html) == html

    def test_unsubscribe_link_appended_to_fragment(self):
        assert ensure_unsubscribe_link('<p>Hi</p>').startswith('<p>Hi</p>')
        assert '{{unsubscribe_text}}' in ensure_unsubscribe_link('<p>Hi</p>')

    def test_map_sender_status(self):
        assert map_sender_status('active') == 'active'
        assert map_sender_status('unsubscribed') == 'churned'
        assert map_sender_status('bounced') == 'churned'
        assert map_sender_status(None) == 'churned'

    def test_campaign_fields_from_remote(self):
        fields = campaign_fields_from_remote({
            'id': 77,
            'subject': '',
            'editor': 'dragdrop',
            'html': {'html_content': '', 'html_body': '<p>Body</p>'},
            'auto_followup_active': 1,
            'campaign_groups': ['g1', 'g2'],
            'status': 'SENT',
            'sent_time': '2026-02-01T10:00:00Z',
            'opens': '5'
        }, current_content='<p>old</p>')

        assert fields['subject'] == '(No Subject)'
        assert fields['content_type'] == 'dragdrop'
        assert fields['content'] == '<p>Body</p>'
        assert fields['auto_followup_active'] is True
        assert fields['groups'] == ['g1', 'g2']
        assert fields['sent_time'] == datetime(2026, 2, 1, 10, 0)
        assert fields['opens'] == 5

    def test_campaign_fields_keep_local_content(self):
        fields = campaign_fields_from_remote({'subject': 'S'}, current_content='<p>old</p>')
        assert fields['content'] == '<p>old</p>'
        assert fields['status'] == 'DRAFT'

    def test_sync_message(self):
        idle = {'pushed': {'synced': 0}, 'pulled': {'updated': 0, 'created': 0}}
        busy = {'pushed': {'synced': 2}, 'pulled': {'updated': 1, 'created': 3}}

        assert sync_message(idle) == 'All subscribers are already in sync'
        assert 'pushed 2' in sync_message(busy)
        assert 'created 3' in sync_message(busy)


class TestSenderClient:

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv('SENDER_API_KEY', raising=False)
        with pytest.raises(SenderError) as exc:
            SenderService().get_campaign('1')
        assert exc.value.status_code == 500

    @patch('app.services.sender_service.requests.request')
    def test_error_carries_status(self, mock_request, sender):
        mock_request.return_value = _response(422, {'message': 'subject is required'})

        with pytest.raises(SenderError) as exc:
            sender.get_campaign('1')
        assert exc.value.status_code == 422
        assert 'subject is required' in exc.value.message

    @patch('app.services.sender_service.requests.request')
    def test_create_campaign_payload(self, mock_request, sender):
        mock_request.return_value = _response(200, {'data': {'id': 'c1'}})

        campaign = sender.create_campaign('Subject', '<p>Body</p>', google_analytics=True)

        assert campaign == {'id': 'c1'}
        payload = mock_request.call_args.kwargs['json']
        assert payload['title'] == 'Subject'
        assert payload['groups'] == ['list-1']
        assert payload['google_analytics'] == 1
        assert '{{unsubscribe_link}}' in payload['content']

    @patch('app.services.sender_service.requests.request')
    def test_delete_campaigns_bracketed_ids(self, mock_request, sender):
        mock_request.return_value = _response(200, {'success': True})

        sender.delete_campaigns(['1', '2'])
        assert mock_request.call_args.kwargs['params'] == {'ids': '[1,2]'}

    @patch('app.services.sender_service.requests.request')
    def test_paginate_follows_last_page(self, mock_request, sender):
        mock_request.side_effect = [
            _response(200, {'data': [{'id': 1}], 'meta': {'last_page': 2}}),
            _response(200, {'data': [{'id': 2}], 'meta': {'last_page': 2}}),
        ]

        assert [g['id'] for g in sender.get_all_groups()] == [1, 2]
        assert mock_request.call_count == 2

    @patch('app.services.sender_service.requests.request')
    def test_get_subscriber(self, mock_request, sender):
        mock_request.return_value = _response(200, {'data': {'email': 'ada@example.com'}})

        assert sender.get_subscriber('ada@example.com') == {'email': 'ada@example.com'}
        assert mock_request.call_args.args == ('GET', 'https://api.sender.net/v2/subscribers/ada@example.com')

    @patch('app.services.sender_service.requests.request')
    def test_update_subscriber(self, mock_request, sender):
        mock_request.return_value = _response(200, {'success': True})

        sender.update_subscriber('ada@example.com', {'firstname': 'Ada'})

        assert mock_request.call_args.args == ('PATCH', 'https://api.sender.net/v2/subscribers/ada@example.com')
        assert mock_request.call_args.kwargs['json'] == {'firstname': 'Ada'}


class TestSubscriberSync:

    @patch('app.services.sender_service.requests.request')
    def test_push_unsynced_skips_pull(self, mock_request, app, sender):
        db.session.add(DBSubscriber('new@example.com'))
        db.session.commit()
        mock_request.return_value = _response(200, {'data': {'id': 's1'}})

        result = sender.sync_subscribers()

        assert result['pushed'] == {'synced': 1, 'failed': 0}
        assert result['pulled']['created'] == 0
        assert mock_request.call_count == 1
        assert DBSubscriber.query.first().synced_to_sender is True

    @patch('app.services.sender_service.requests.request')
    def test_pull_creates_and_updates(self, mock_request, app, sender):
        db.session.add(DBSubscriber('known@example.com', synced_to_sender=True))
        db.session.commit()
        mock_request.return_value = _response(200, {'data': [
            {'email': 'Known@example.com', 'status': {'email': 'unsubscribed'}},
            {'email': 'fresh@example.com', 'status': {'email': 'active'}},
        ]})

        result = sender.sync_subscribers()

        assert result['pulled'] == {'updated': 1, 'created': 1, 'errors': 0}
        assert DBSubscriber.query.filter_by(email='known@example.com').first().status == 'churned'
        fresh = DBSubscriber.query.filter_by(email='fresh@example.com').first()
        assert fresh.status == 'active'
        assert fresh.synced_to_sender is True

    @patch('app.services.sender_service.requests.request')
    def test_push_failure_recorded(self, mock_request, app, sender):
        db.session.add(DBSubscriber('new@example.com'))
        db.session.commit()
        mock_request.return_value = _response(500, {'message': 'down'})

        result = sender.sync_subscribers()

        assert result['pushed'] == {'synced': 0, 'failed': 1}
        assert len(result['errors']) == 1

    @patch.object(SenderService, 'get_all_subscribers', side_effect=SenderError('Unauthorized', 401))
    def test_pull_failure_fails_sync(self, mock_pull, app, sender):
        db.session.add(DBSubscriber('known@example.com', synced_to_sender=True))
        db.session.commit()

        result = sender.sync_subscribers()

        assert result['success'] is False
        assert result['pulled'] == {'updated': 0, 'created': 0, 'errors': 0}
        assert result['errors'] == ['Error in pull sync: Unauthorized']

    @patch('app.services.sender_service.requests.request')
    def test_partial_push_still_succeeds(self, mock_request, app, sender):
        db.session.add_all([DBSubscriber('a@example.com'), DBSubscriber('b@example.com')])
        db.session.commit()
        mock_request.side_effect = [_response(200, {'data': {'id': 's1'}}), _response(500, {'message': 'down'})]

        result = sender.sync_subscribers()

        assert result['success'] is True
        assert result['pushed'] == {'synced': 1, 'failed': 1}
