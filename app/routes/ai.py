"""
Brand Studio - AI Routes
Provider integrations, post generation/refinement and the post idea bank
"""
from flask import Blueprint, request, jsonify
from datetime import datetime
import logging

from app.database import db
from app.models.db_models import DBAiIntegration, DBPostIdea, AIProvider, IdeaStatus
from app.routes.auth import token_required
from app.services import ai_service
from app.services.ai_service import AIServiceError
from app.utils import safe_int

logger = logging.getLogger(__name__)

ai_bp = Blueprint('ai', __name__)

MAX_POSTS = 10
MAX_IDEAS = 20


def _ai_error(e: AIServiceError):
    logger.error(f"AI request failed: {e.message}")
    return jsonify({'error': e.message}), e.status_code


def _invalid_provider():
    return jsonify({'error': f"Invalid provider. Must be one of: {', '.join(AIProvider.ALL)}"}), 400


# ==========================================
# INTEGRATIONS
# ==========================================

@ai_bp.route('/integrations', methods=['GET'])
@token_required
def list_integrations(current_user):
    integrations = DBAiIntegration.query.order_by(DBAiIntegration.created_at.desc()).all()
    return jsonify({'integrations': [i.to_dict() for i in integrations]})


@ai_bp.route('/integrations', methods=['POST'])
@token_required
def create_integration(current_user):
    """
    Store credentials for an AI provider

    POST /api/ai/integrations
    {"name": "OpenAI main", "provider": "openai", "apiKey": "sk-...", "model": "gpt-4o"}
    """
    data = request.get_json(silent=True) or {}
    if not data.get('name') or not data.get('provider') or not (data.get('apiKey') or '').strip():
        return jsonify({'error': 'Name, provider, and API key are required'}), 400
    if data['provider'] not in AIProvider.ALL:
        return _invalid_provider()

    integration = DBAiIntegration(
        name=data['name'].strip(),
        provider=data['provider'],
        api_key=data['apiKey'].strip(),
        model=(data.get('model') or '').strip() or None,
        is_active=bool(data.get('isActive', True))
    )
    db.session.add(integration)
    db.session.commit()
    logger.info(f"AI integration {integration.name} ({integration.provider}) created")
    return jsonify({'integration': integration.to_dict()}), 201


@ai_bp.route('/integrations/<integration_id>', methods=['PUT'])
@token_required
def update_integration(current_user, integration_id):
    integration = db.session.get(DBAiIntegration, integration_id)
    if not integration:
        return jsonify({'error': 'AI integration not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'provider' in data:
        if data['provider'] not in AIProvider.ALL:
            return _invalid_provider()
        integration.provider = data['provider']
    if data.get('name'):
        integration.name = data['name'].strip()
    # A blank key keeps the stored one; the UI never receives it
    if (data.get('apiKey') or '').strip():
        integration.api_key = data['apiKey'].strip()
    if 'model' in data:
        integration.model = (data['model'] or '').strip() or None
    if 'isActive' in data:
        integration.is_active = bool(data['isActive'])

    integration.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'integration': integration.to_dict()})


@ai_bp.route('/integrations/<integration_id>', methods=['DELETE'])
@token_required
def delete_integration(current_user, integration_id):
    integration = db.session.get(DBAiIntegration, integration_id)
    if not integration:
        return jsonify({'error': 'AI integration not found'}), 404
    db.session.delete(integration)
    db.session.commit()
    return jsonify({'success': True})


# ==========================================
# GENERATION
# ==========================================

@ai_bp.route('/generate-post', methods=['POST'])
@token_required
def generate_post(current_user):
    """
    Generate one or more social posts

    POST /api/ai/generate-post
    {
        "prompt": "Announce the new article, keep it personal",
        "platform": "linkedin",
        "aiIntegrationId": "ai_abc",
        "blogTitle": "...", "blogExcerpt": "...", "blogContent": "<p>...</p>",
        "count": 3
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get('prompt') or not data.get('platform') or not data.get('aiIntegrationId'):
        return jsonify({'error': 'Prompt, platform, and AI integration ID are required'}), 400

    count = safe_int(data.get('count'), 1, min_val=1, max_val=MAX_POSTS)
    try:
        contents = ai_service.generate_multiple_posts(
            data['aiIntegrationId'],
            data['prompt'],
            data['platform'],
            count=count,
            blog_title=data.get('blogTitle'),
            blog_excerpt=data.get('blogExcerpt'),
            blog_content=data.get('blogContent')
        )
    except AIServiceError as e:
        return _ai_error(e)

    return jsonify({'content': contents[0] if contents else '', 'contents': contents, 'count': len(contents)})


@ai_bp.route('/refine-post', methods=['POST'])
@token_required
def refine_post(current_user):
    data = request.get_json(silent=True) or {}
    if not data.get('content') or not data.get('refinementPrompt') or not data.get('aiIntegrationId'):
        return jsonify({'error': 'Content, refinement prompt, and AI integration ID are required'}), 400

    try:
        content = ai_service.refine_post(data['aiIntegrationId'], data['content'], data['refinementPrompt'])
    except AIServiceError as e:
        return _ai_error(e)
    return jsonify({'content': content})


@ai_bp.route('/generate-ideas', methods=['POST'])
@token_required
def generate_ideas(current_user):
    """Generate post ideas and keep them as drafts in the idea bank"""
    data = request.get_json(silent=True) or {}
    if not data.get('prompt') or not data.get('aiIntegrationId'):
        return jsonify({'error': 'Prompt and AI integration ID are required'}), 400

    count = safe_int(data.get('count'), 5, min_val=1, max_val=MAX_IDEAS)
    try:
        ideas = ai_service.generate_ideas(data['aiIntegrationId'], data['prompt'], count)
    except AIServiceError as e:
        return _ai_error(e)

    saved = []
    for idea in ideas:
        title = idea.split(':', 1)[0].strip() if ':' in idea else idea
        record = DBPostIdea(
            title=title[:500],
            content=idea,
            prompt=data['prompt'],
            platforms=data.get('platforms'),
            created_by=current_user.id
        )
        db.session.add(record)
        saved.append(record)
    db.session.commit()

    return jsonify({'ideas': [i.to_dict() for i in saved]})


# ==========================================
# IDEA BANK
# ==========================================

@ai_bp.route('/ideas', methods=['GET'])
@token_required
def list_ideas(current_user):
    query = DBPostIdea.query
    status = request.args.get('status')
    if status:
        query = query.filter(DBPostIdea.status == status)
    ideas = query.order_by(DBPostIdea.created_at.desc()).all()
    return jsonify({'ideas': [i.to_dict() for i in ideas]})


@ai_bp.route('/ideas', methods=['PUT'])
@token_required
def update_idea(current_user):
    idea_id = request.args.get('id')
    if not idea_id:
        return jsonify({'error': 'ID is required'}), 400

    idea = db.session.get(DBPostIdea, idea_id)
    if not idea:
        return jsonify({'error': 'Idea not found'}), 404

    data = request.get_json(silent=True) or {}
    if data.get('title'):
        idea.title = data['title']
    if data.get('content'):
        idea.content = data['content']
    if 'platforms' in data:
        idea.set_platforms(data['platforms'])
    if 'status' in data:
        if data['status'] not in IdeaStatus.ALL:
            return jsonify({'error': f"Invalid status. Must be one of: {', '.join(IdeaStatus.ALL)}"}), 400
        idea.status = data['status']

    idea.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'idea': idea.to_dict()})


@ai_bp.route('/ideas', methods=['DELETE'])
@token_required
def delete_idea(current_user):
    idea_id = request.args.get('id')
    if not idea_id:
        return jsonify({'error': 'ID is required'}), 400

    idea = db.session.get(DBPostIdea, idea_id)
    if not idea:
        return jsonify({'error': 'Idea not found'}), 404
    db.session.delete(idea)
    db.session.commit()
    return jsonify({'success': True})
