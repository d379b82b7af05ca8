"""
Brand Studio - Cron Routes
Start, stop and inspect the background jobs
"""
from flask import Blueprint, request, jsonify, current_app
import logging

from app.routes.auth import admin_required, cron_or_admin
from app.services import scheduler_service
from app.services.social_service import publish_scheduled_posts

logger = logging.getLogger(__name__)

cron_bp = Blueprint('cron', __name__)

ACTIONS = {
    'start': scheduler_service.start_job,
    'stop': lambda name, app=None: scheduler_service.stop_job(name),
    'restart': scheduler_service.restart_job,
}
ACTION_VERBS = {'start': 'started', 'stop': 'stopped', 'restart': 'restarted'}
LABELS = {'youtube': 'YouTube', 'email': 'Email'}


@cron_bp.route('/status', methods=['GET'])
@admin_required
def status(current_user):
    return jsonify(scheduler_service.get_scheduler_status())


@cron_bp.route('/init', methods=['POST'])
@admin_required
def init(current_user):
    """Start the scheduler in this process if it is not running yet"""
    scheduler_service.init_scheduler(current_app._get_current_object())
    return jsonify({
        'message': 'All cron jobs initialized',
        'status': scheduler_service.get_scheduler_status()
    })


def _control(name: str):
    if request.method == 'GET':
        job = scheduler_service.job_status(name)
        return jsonify({'success': True, 'cron': job, 'schedule': job['schedule']})

    action = (request.get_json(silent=True) or {}).get('action')
    handler = ACTIONS.get(action)
    if handler is None:
        return jsonify({'error': 'Invalid action. Use "start", "stop", or "restart"'}), 400

    job = handler(name, app=current_app._get_current_object())
    logger.info(f"{LABELS[name]} job {ACTION_VERBS[action]}")
    return jsonify({
        'success': True,
        'message': f"{LABELS[name]} cron job {ACTION_VERBS[action]}",
        'cron': job
    })


@cron_bp.route('/youtube', methods=['GET', 'POST'])
@admin_required
def youtube(current_user):
    return _control('youtube')


@cron_bp.route('/email', methods=['GET', 'POST'])
@admin_required
def email(current_user):
    return _control('email')


@cron_bp.route('/social', methods=['GET', 'POST'])
@cron_or_admin
def social(current_user):
    """
    Run the social publisher once

    POST /api/cron/social
    Header: X-Cron-Secret: <CRON_SECRET>   (or an admin session)
    """
    result = publish_scheduled_posts()
    return jsonify({'success': True, **result})
