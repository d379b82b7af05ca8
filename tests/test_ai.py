"""
Brand Studio - AI Service Tests
"""
from unittest.mock import MagicMock, patch

import pytest

from app.database import db
from app.models.db_models import DBAiIntegration, DBPostIdea
from app.services import ai_service
from app.services.ai_service import (
    AIServiceError, clean_refined_content, complete, format_post_with_paragraphs,
    get_integration, normalize_gemini_model, parse_ideas, parse_posts, parse_tasks,
    remove_indentation
)


@pytest.fixture
def integration(app):
    record = DBAiIntegration('OpenAI main', 'openai', 'sk-test-1234')
    db.session.add(record)
    db.session.commit()
    return record


class TestFormatting:

    def test_remove_indentation(self):
        assert remove_indentation('    first\n      second\n\n    third') == 'first\n  second\n\nthird'
        assert remove_indentation('flush\n  indented') == 'flush\n  indented'

    def test_hashtags_on_own_line(self):
        assert format_post_with_paragraphs('Short post. #ai #ml') == 'Short post.\n\n#ai #ml'

    def test_collapses_blank_lines(self):
        assert format_post_with_paragraphs('First.\n\n\n\nSecond.') == 'First.\n\nSecond.'

    def test_long_text_is_split(self):
        sentence = 'This sentence is exactly long enough to matter for splitting. '
        result = format_post_with_paragraphs(sentence * 8)
        assert '\n\n' in result

    def test_clean_refined_content(self):
        assert clean_refined_content('Here is the refined post: "Great news!"') == 'Great news!'
        assert clean_refined_content('```\nHello world\n```') == 'Hello world'
        assert clean_refined_content('Refined: Plain text') == 'Plain text'


class TestParsing:

    def test_posts_with_separator(self):
        response = ('Here are 2 posts:\n---POST---\nFirst post content here\n'
                    '---POST---\nSecond post content here\n---POST---\nThird post content here')

        assert parse_posts(response, 2) == ['First post content here', 'Second post content here']

    def test_posts_numbered(self):
        response = '1. Alpha post about things\n2. Beta post about stuff'
        assert parse_posts(response, 5) == ['Alpha post about things', 'Beta post about stuff']

    def test_ideas_skip_preamble_and_bold(self):
        response = ('Here are some ideas:\n'
                    '1. **Behind the scenes**: Show the studio setup\n'
                    '2. **Quick tips**: Share three tips from this week')

        assert parse_ideas(response, 5) == [
            'Behind the scenes: Show the studio setup',
            'Quick tips: Share three tips from this week'
        ]

    def test_tasks(self):
        response = ('```json\n[{"title": "Reply to Ada", "description": "Send the quote", "priority": "HIGH"},'
                    ' {"title": "No priority"}, {"title": "Archive", "priority": "urgent"}]\n```')

        tasks = parse_tasks(response)

        assert tasks == [
            {'title': 'Reply to Ada', 'description': 'Send the quote', 'priority': 'high'},
            {'title': 'Archive', 'description': None, 'priority': 'medium'}
        ]

    def test_tasks_empty_array(self):
        assert parse_tasks('[]') == []

    @pytest.mark.parametrize('response', ['not json', '{"title": "x"}'])
    def test_tasks_invalid(self, response):
        with pytest.raises(AIServiceError, match='Failed to parse AI response'):
            parse_tasks(response)

    def test_gemini_model_names(self):
        assert normalize_gemini_model('models/gemini-1.5-pro') == 'gemini-1.5-pro'
        assert normalize_gemini_model('gpt-4') == 'gemini-pro'
        assert normalize_gemini_model(None) == 'gemini-pro'


class TestIntegrations:

    def test_missing_or_inactive(self, integration):
        with pytest.raises(AIServiceError) as exc:
            get_integration('ai_missing')
        assert exc.value.status_code == 404

        integration.is_active = False
        db.session.commit()
        with pytest.raises(AIServiceError) as exc:
            get_integration(integration.id)
        assert exc.value.status_code == 404

    def test_blank_key(self, app):
        record = DBAiIntegration('Blank', 'anthropic', '   ')
        db.session.add(record)
        db.session.commit()

        with pytest.raises(AIServiceError) as exc:
            get_integration(record.id)
        assert exc.value.status_code == 400

    def test_complete_uses_default_model(self, integration):
        provider = MagicMock(return_value='generated')
        with patch.dict(ai_service.PROVIDERS, {'openai': provider}):
            assert complete(integration, 'system', 'user') == 'generated'
        provider.assert_called_once_with('sk-test-1234', 'gpt-4', 'system', 'user')

    def test_unsupported_provider(self, integration):
        integration.provider = 'mistral'
        with pytest.raises(AIServiceError) as exc:
            complete(integration, 'system', 'user')
        assert exc.value.status_code == 400

    @patch('app.services.ai_service.complete')
    def test_multiple_posts_fill_missing(self, mock_complete, integration):
        mock_complete.side_effect = [
            '---POST---\nOnly one post came back\n',
            'A second post generated alone'
        ]

        posts = ai_service.generate_multiple_posts(integration.id, 'Launch', 'linkedin', count=2)

        assert posts == ['Only one post came back', 'A second post generated alone']
        assert mock_complete.call_count == 2


class TestAIRoutes:

    def test_create_integration_hides_key(self, client, auth_headers):
        response = client.post('/api/ai/integrations', headers=auth_headers, json={
            'name': 'Claude', 'provider': 'anthropic', 'apiKey': ' sk-ant-abcd '
        })

        assert response.status_code == 201
        data = response.get_json()['integration']
        assert data['apiKeyPreview'] == '****abcd'
        assert 'apiKey' not in data

    def test_create_integration_validation(self, client, auth_headers):
        missing = client.post('/api/ai/integrations', headers=auth_headers, json={'name': 'x', 'provider': 'openai'})
        assert missing.status_code == 400

        invalid = client.post('/api/ai/integrations', headers=auth_headers, json={
            'name': 'x', 'provider': 'mistral', 'apiKey': 'k'
        })
        assert invalid.status_code == 400

    def test_update_keeps_key_when_blank(self, client, auth_headers, integration):
        response = client.put(f'/api/ai/integrations/{integration.id}', headers=auth_headers,
                              json={'apiKey': '', 'model': 'gpt-4o'})

        assert response.get_json()['integration']['model'] == 'gpt-4o'
        assert db.session.get(DBAiIntegration, integration.id).api_key == 'sk-test-1234'

    @patch('app.services.ai_service.generate_multiple_posts')
    def test_generate_post_error_status(self, mock_generate, client, auth_headers):
        mock_generate.side_effect = AIServiceError('AI integration not found or inactive', status_code=404)

        response = client.post('/api/ai/generate-post', headers=auth_headers, json={
            'prompt': 'Hello', 'platform': 'twitter', 'aiIntegrationId': 'ai_missing'
        })

        assert response.status_code == 404
        assert response.get_json()['error'] == 'AI integration not found or inactive'

    @patch('app.services.ai_service.generate_multiple_posts')
    def test_generate_post_count(self, mock_generate, client, auth_headers):
        mock_generate.return_value = ['one', 'two', 'three']

        response = client.post('/api/ai/generate-post', headers=auth_headers, json={
            'prompt': 'Hello', 'platform': 'twitter', 'aiIntegrationId': 'ai_1', 'count': 50
        })

        assert response.get_json()['count'] == 3
        assert mock_generate.call_args.kwargs['count'] == 10

    @patch('app.services.ai_service.generate_ideas')
    def test_ideas_saved_as_drafts(self, mock_ideas, client, auth_headers):
        mock_ideas.return_value = ['Behind the scenes: Show the studio setup', 'A plain idea without title']

        response = client.post('/api/ai/generate-ideas', headers=auth_headers, json={
            'prompt': 'Studio life', 'aiIntegrationId': 'ai_1', 'platforms': 'linkedin'
        })

        ideas = response.get_json()['ideas']
        assert [i['title'] for i in ideas] == ['Behind the scenes', 'A plain idea without title']
        assert ideas[0]['platforms'] == ['linkedin']
        assert ideas[0]['status'] == 'draft'
        assert DBPostIdea.query.count() == 2

    def test_idea_status_validation(self, client, auth_headers):
        idea = DBPostIdea('Title', 'Content')
        db.session.add(idea)
        db.session.commit()

        assert client.put(f'/api/ai/ideas?id={idea.id}', headers=auth_headers,
                          json={'status': 'done'}).status_code == 400
        ok = client.put(f'/api/ai/ideas?id={idea.id}', headers=auth_headers, json={'status': 'used'})
        assert ok.get_json()['idea']['status'] == 'used'
        assert client.delete('/api/ai/ideas', headers=auth_headers).status_code == 400
