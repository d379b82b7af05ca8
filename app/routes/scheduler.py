"""
Brand Studio - Scheduler Routes
Monitor background jobs and trigger them by hand
"""
from flask import Blueprint, jsonify
from app.routes.auth import admin_required
from app.services.scheduler_service import get_scheduler_status, run_job_now

scheduler_bp = Blueprint('scheduler', __name__)


@scheduler_bp.route('/status', methods=['GET'])
@admin_required
def scheduler_status(current_user):
    """
    Get scheduler status and list of jobs

    GET /api/scheduler/status
    """
    return jsonify(get_scheduler_status())


@scheduler_bp.route('/jobs/<job_id>/run', methods=['POST'])
@admin_required
def trigger_job(current_user, job_id):
    """
    Manually trigger a scheduled job to run immediately

    POST /api/scheduler/jobs/{job_id}/run
    job_id: social_publish | youtube_fetch | subscriber_sync | email_sync
    """
    result = run_job_now(job_id)

    if result.get('error'):
        return jsonify(result), 400

    return jsonify(result)
