"""
Brand Studio - Email Routes
Gmail connection, inbox mirror, AI task extraction and the inbox job settings
"""
from flask import Blueprint, request, jsonify, redirect
from datetime import datetime, timedelta
from urllib.parse import quote
import logging

import requests

from app.database import db
from app.models.db_models import (
    DBEmail, DBEmailTask, DBGoogleConnection, TaskPriority, TaskStatus
)
from app.routes.auth import token_required
from app.services import scheduler_service
from app.services.ai_service import AIServiceError
from app.services.gmail_service import (
    GmailError, get_active_connection, sync_emails, cleanup_emails,
    analyze_thread, analyze_unread_emails, get_cron_config, create_external_task
)
from app.services.oauth_service import get_oauth_service, OAuthState, OAuthError
from app.utils import get_site_url, get_pagination_params

logger = logging.getLogger(__name__)

email_bp = Blueprint('email', __name__)

FILTERS = {
    'readStatus': ('all', 'read', 'unread'),
    'analyzedStatus': ('all', 'analyzed', 'unanalyzed'),
    'relevantStatus': ('all', 'relevant', 'irrelevant'),
}


def _service_error(e):
    logger.error(f"Email route error: {e}")
    return jsonify({'error': e.message}), e.status_code


# ==========================================
# CONNECTION
# ==========================================

@email_bp.route('/connect', methods=['GET'])
@token_required
def connect(current_user):
    """GET /api/email/connect -> {authUrl}"""
    try:
        auth_url, state, _ = get_oauth_service().get_auth_url('google', current_user.id)
    except OAuthError as e:
        return jsonify({'error': e.message}), e.status_code
    return jsonify({'authUrl': auth_url, 'state': state})


@email_bp.route('/callback', methods=['GET'])
def oauth_callback():
    target = f"{get_site_url()}/admin/email"

    error = request.args.get('error')
    if error:
        logger.warning(f"Google OAuth error: {error}")
        return redirect(f"{target}?error={quote(error)}")

    if not OAuthState.validate(request.args.get('state'), 'google'):
        return redirect(f"{target}?error=invalid_state")

    code = request.args.get('code')
    if not code:
        return redirect(f"{target}?error=missing_code")

    service = get_oauth_service()
    try:
        token_data = service.exchange_code('google', code)
        profile = service.get_profile('google', token_data['access_token'])
    except (OAuthError, requests.RequestException) as e:
        logger.error(f"Google OAuth exchange failed: {e}")
        return redirect(f"{target}?error={quote(str(e))}")

    expires_in = int(token_data.get('expires_in') or 3600)
    connection = DBGoogleConnection.query.filter_by(email=profile['email']).first()
    if connection is None:
        connection = DBGoogleConnection(email=profile['email'], access_token=token_data['access_token'])
        db.session.add(connection)

    # Only one inbox is mirrored
    DBGoogleConnection.query.filter(DBGoogleConnection.id != connection.id).update({'is_active': False})

    connection.access_token = token_data['access_token']
    connection.refresh_token = token_data.get('refresh_token') or connection.refresh_token
    connection.expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
    connection.is_active = True
    connection.updated_at = datetime.utcnow()
    db.session.commit()

    logger.info(f"Connected Gmail account {connection.email}")
    return redirect(f"{target}?connected=true")


@email_bp.route('/connection', methods=['GET'])
@token_required
def get_connection(current_user):
    connection = get_active_connection()
    if connection is None:
        return jsonify({'connected': False})
    return jsonify(connection.to_dict())


@email_bp.route('/connection', methods=['DELETE'])
@token_required
def disconnect(current_user):
    connection = get_active_connection()
    if connection is None:
        return jsonify({'error': 'Google account not connected'}), 404
    connection.is_active = False
    db.session.commit()
    return jsonify({'success': True})


# ==========================================
# INBOX
# ==========================================

def _thread_matches(emails, read_status, analyzed_status, relevant_status) -> bool:
    if read_status == 'unread' and all(e.is_read for e in emails):
        return False
    if read_status == 'read' and not all(e.is_read for e in emails):
        return False
    if analyzed_status == 'analyzed' and not all(e.is_analyzed for e in emails):
        return False
    if analyzed_status == 'unanalyzed' and all(e.is_analyzed for e in emails):
        return False
    if relevant_status == 'relevant' and any(e.is_irrelevant for e in emails):
        return False
    if relevant_status == 'irrelevant' and not any(e.is_irrelevant for e in emails):
        return False
    return True


def _thread_summary(key, emails, task_counts) -> dict:
    emails = sorted(emails, key=lambda e: e.received_at, reverse=True)
    latest = emails[0]
    return {
        'threadId': key,
        'subject': latest.subject,
        'emailCount': len(emails),
        'hasUnread': any(not e.is_read for e in emails),
        'isAnalyzed': all(e.is_analyzed for e in emails),
        'isIrrelevant': any(e.is_irrelevant for e in emails),
        'taskCount': sum(task_counts.get(e.id, 0) for e in emails),
        'latestEmail': latest.to_dict(include_body=False),
        'latestReceivedAt': latest.received_at.isoformat(),
        'emails': [e.to_dict(include_body=False) for e in emails]
    }


@email_bp.route('', methods=['GET'])
@token_required
def list_emails(current_user):
    """
    List mirrored emails

    GET /api/email
    GET /api/email?grouped=true&search=invoice&readStatus=unread&analyzedStatus=all
        &relevantStatus=relevant&page=1&pageSize=20
    """
    if request.args.get('grouped') != 'true':
        emails = DBEmail.query.order_by(DBEmail.received_at.desc()).all()
        return jsonify({'emails': [e.to_dict() for e in emails]})

    filters = {}
    for name, allowed in FILTERS.items():
        default = 'relevant' if name == 'relevantStatus' else 'all'
        value = request.args.get(name, default)
        filters[name] = value if value in allowed else default

    page_size, start, page = get_pagination_params(request)

    query = DBEmail.query
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(
            DBEmail.subject.ilike(pattern),
            DBEmail.from_address.ilike(pattern),
            DBEmail.snippet.ilike(pattern)
        ))

    threads = {}
    for email in query.all():
        threads.setdefault(email.thread_key, []).append(email)

    matching = {
        key: emails for key, emails in threads.items()
        if _thread_matches(emails, filters['readStatus'], filters['analyzedStatus'], filters['relevantStatus'])
    }

    task_counts = dict(
        db.session.query(DBEmailTask.email_id, db.func.count(DBEmailTask.id))
        .group_by(DBEmailTask.email_id).all()
    )
    summaries = [_thread_summary(key, emails, task_counts) for key, emails in matching.items()]
    summaries.sort(key=lambda t: t['latestReceivedAt'], reverse=True)

    total = len(summaries)
    return jsonify({
        'threads': summaries[start:start + page_size],
        'total': total,
        'page': page,
        'pageSize': page_size,
        'totalPages': (total + page_size - 1) // page_size
    })


@email_bp.route('/<email_id>', methods=['DELETE'])
@token_required
def delete_email(current_user, email_id):
    email = db.session.get(DBEmail, email_id)
    if not email:
        return jsonify({'error': 'Email not found'}), 404
    db.session.delete(email)
    db.session.commit()
    return jsonify({'success': True})


@email_bp.route('/sync', methods=['POST'])
@token_required
def sync(current_user):
    try:
        return jsonify(sync_emails())
    except GmailError as e:
        db.session.rollback()
        return _service_error(e)
    except requests.RequestException as e:
        db.session.rollback()
        logger.error(f"Gmail sync failed: {e}")
        return jsonify({'error': f'Failed to sync emails: {e}'}), 502


@email_bp.route('/cleanup', methods=['POST'])
@token_required
def cleanup(current_user):
    try:
        return jsonify(cleanup_emails())
    except GmailError as e:
        db.session.rollback()
        return _service_error(e)
    except requests.RequestException as e:
        db.session.rollback()
        logger.error(f"Gmail cleanup failed: {e}")
        return jsonify({'error': f'Failed to clean up emails: {e}'}), 502


# ==========================================
# ANALYSIS
# ==========================================

@email_bp.route('/analyze', methods=['POST'])
@token_required
def analyze(current_user):
    """
    Extract tasks from one email's thread

    POST /api/email/analyze
    {"emailId": "email_abc", "aiIntegrationId": "ai_xyz"}
    """
    data = request.get_json(silent=True) or {}
    if not data.get('emailId') or not data.get('aiIntegrationId'):
        return jsonify({'error': 'emailId and aiIntegrationId are required'}), 400

    email = db.session.get(DBEmail, data['emailId'])
    if not email:
        return jsonify({'error': 'Email not found'}), 404

    try:
        tasks = analyze_thread(data['aiIntegrationId'], email)
    except AIServiceError as e:
        db.session.rollback()
        return _service_error(e)

    return jsonify({'success': True, 'tasks': [t.to_dict() for t in tasks]})


@email_bp.route('/analyze-all', methods=['POST'])
@token_required
def analyze_all(current_user):
    data = request.get_json(silent=True) or {}
    if not data.get('aiIntegrationId'):
        return jsonify({'error': 'aiIntegrationId is required'}), 400

    try:
        return jsonify(analyze_unread_emails(data['aiIntegrationId']))
    except AIServiceError as e:
        return _service_error(e)


@email_bp.route('/irrelevant', methods=['POST'])
@token_required
def mark_irrelevant(current_user):
    data = request.get_json(silent=True) or {}
    thread_id = data.get('threadId')
    is_irrelevant = data.get('isIrrelevant')
    if not thread_id or not isinstance(is_irrelevant, bool):
        return jsonify({'error': 'threadId and isIrrelevant (boolean) are required'}), 400

    updated = DBEmail.query.filter(
        db.or_(DBEmail.thread_id == thread_id, DBEmail.id == thread_id)
    ).update({'is_irrelevant': is_irrelevant}, synchronize_session=False)
    db.session.commit()
    return jsonify({'success': True, 'updated': updated, 'threadId': thread_id, 'isIrrelevant': is_irrelevant})


# ==========================================
# TASKS
# ==========================================

@email_bp.route('/tasks', methods=['GET'])
@token_required
def list_tasks(current_user):
    tasks = DBEmailTask.query.order_by(DBEmailTask.created_at.desc()).all()
    return jsonify({'tasks': [t.to_dict() for t in tasks]})


@email_bp.route('/tasks/<task_id>', methods=['PATCH'])
@token_required
def update_task(current_user, task_id):
    task = db.session.get(DBEmailTask, task_id)
    if not task:
        return jsonify({'error': 'Task not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'status' in data:
        if data['status'] not in TaskStatus.ALL:
            return jsonify({'error': f"Invalid status. Must be one of: {', '.join(TaskStatus.ALL)}"}), 400
        task.status = data['status']
    if 'priority' in data:
        if data['priority'] not in TaskPriority.ALL:
            return jsonify({'error': f"Invalid priority. Must be one of: {', '.join(TaskPriority.ALL)}"}), 400
        task.priority = data['priority']
    if data.get('title'):
        task.title = data['title']
    if 'description' in data:
        task.description = data['description']

    task.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'task': task.to_dict()})


@email_bp.route('/tasks/<task_id>', methods=['DELETE'])
@token_required
def delete_task(current_user, task_id):
    task = db.session.get(DBEmailTask, task_id)
    if not task:
        return jsonify({'error': 'Task not found'}), 404

    # The thread can be analyzed again once one of its tasks is gone
    email = task.email
    if email is not None:
        if email.thread_id:
            DBEmail.query.filter_by(thread_id=email.thread_id).update({'is_analyzed': False})
        else:
            email.is_analyzed = False

    db.session.delete(task)
    db.session.commit()
    return jsonify({'success': True})


@email_bp.route('/tasks/<task_id>/create-external', methods=['POST'])
@token_required
def create_external(current_user, task_id):
    task = db.session.get(DBEmailTask, task_id)
    if not task:
        return jsonify({'error': 'Task not found'}), 404

    try:
        external_id = create_external_task(task)
    except GmailError as e:
        return _service_error(e)
    except requests.RequestException as e:
        logger.error(f"External task request failed: {e}")
        return jsonify({'error': 'Failed to create task on external platform', 'details': str(e)}), 500

    return jsonify({
        'success': True,
        'message': 'Task created successfully on external platform',
        'externalTaskId': external_id
    })


# ==========================================
# INBOX JOB SETTINGS
# ==========================================

def _cron_payload(config) -> dict:
    data = config.to_dict()
    next_run = None
    if config.is_enabled:
        try:
            next_run = scheduler_service.next_run_time(config.schedule)
        except ValueError:
            next_run = None
    data['nextRun'] = next_run.isoformat() if next_run else None
    return data


@email_bp.route('/cron', methods=['GET'])
@token_required
def get_cron(current_user):
    return jsonify({'config': _cron_payload(get_cron_config())})


@email_bp.route('/cron', methods=['PUT', 'POST'])
@token_required
def update_cron(current_user):
    """
    Update the inbox job

    PUT /api/email/cron
    {"isEnabled": true, "schedule": "0 */6 * * *", "syncEmails": true,
     "analyzeEmails": true, "aiIntegrationId": "ai_xyz"}
    """
    data = request.get_json(silent=True) or {}

    schedule = data.get('schedule')
    if schedule is not None:
        if not isinstance(schedule, str) or len(schedule.split()) != 5:
            return jsonify({'error': 'Invalid cron schedule format. '
                                     'Expected format: "minute hour day month dayOfWeek"'}), 400
        try:
            scheduler_service.cron_trigger(schedule.strip())
        except ValueError as e:
            return jsonify({'error': f'Invalid cron schedule: {e}'}), 400

    config = get_cron_config()
    if 'isEnabled' in data:
        config.is_enabled = bool(data['isEnabled'])
    if schedule is not None:
        config.schedule = ' '.join(schedule.split())
    if 'syncEmails' in data:
        config.sync_emails = bool(data['syncEmails'])
    if 'analyzeEmails' in data:
        config.analyze_emails = bool(data['analyzeEmails'])
    if 'aiIntegrationId' in data:
        config.ai_integration_id = data['aiIntegrationId'] or None
    config.updated_at = datetime.utcnow()
    db.session.commit()

    scheduler_service.reschedule_job('email', config.schedule)

    return jsonify({'success': True, 'config': _cron_payload(config)})
