"""
Brand Studio - Public Form Routes
Newsletter signup, contact form and podcast guest applications
"""
from flask import Blueprint, request, jsonify
import logging

from app.database import db
from app.models.db_models import (
    DBSubscriber, DBContactMessage, DBPodcastApplication, ApplicationStatus
)
from app.routes.auth import token_required
from app.services.sender_service import get_sender_service

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__)


def _valid_email(value) -> bool:
    return isinstance(value, str) and '@' in value


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ''


# ==========================================
# SUBSCRIBE
# ==========================================

@public_bp.route('/subscribe', methods=['POST'])
def subscribe():
    """
    Newsletter signup

    POST /api/subscribe
    {"email": "reader@example.com"}
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    if not _valid_email(email):
        return jsonify({'error': 'Valid email is required'}), 400

    email = email.strip().lower()
    if DBSubscriber.query.filter_by(email=email).first():
        return jsonify({'error': 'This email is already subscribed'}), 409

    subscriber = DBSubscriber(email=email)
    db.session.add(subscriber)
    db.session.commit()

    get_sender_service().push_subscriber(subscriber)

    return jsonify({
        'success': True,
        'message': 'Successfully subscribed',
        'subscriber': subscriber.to_dict()
    }), 201


# ==========================================
# CONTACT
# ==========================================

@public_bp.route('/contact', methods=['POST'])
def submit_contact():
    data = request.get_json(silent=True) or {}
    name, email, message = _text(data.get('name')), _text(data.get('email')), _text(data.get('message'))

    if not (name and email and message):
        return jsonify({'error': 'Name, email, and message are required'}), 400
    if not _valid_email(email):
        return jsonify({'error': 'Valid email is required'}), 400

    contact = DBContactMessage(name=name, email=email, message=message)
    db.session.add(contact)
    db.session.commit()
    logger.info(f"Contact message {contact.id} received")

    return jsonify({
        'success': True,
        'message': 'Message sent successfully',
        'contactMessage': {'id': contact.id}
    }), 201


@public_bp.route('/contact', methods=['GET'])
@token_required
def list_contact_messages(current_user):
    messages = DBContactMessage.query.order_by(DBContactMessage.submitted_at.desc()).all()
    return jsonify({'messages': [m.to_dict() for m in messages]})


@public_bp.route('/contact', methods=['PUT'])
@token_required
def mark_contact_message(current_user):
    data = request.get_json(silent=True) or {}
    if not data.get('id'):
        return jsonify({'error': 'Message ID is required'}), 400

    contact = db.session.get(DBContactMessage, data['id'])
    if not contact:
        return jsonify({'error': 'Message not found'}), 404

    contact.read = bool(data.get('read', True))
    db.session.commit()
    return jsonify({'message': contact.to_dict()})


@public_bp.route('/contact', methods=['DELETE'])
@token_required
def delete_contact_message(current_user):
    message_id = request.args.get('id')
    if not message_id:
        return jsonify({'error': 'Message ID is required'}), 400

    contact = db.session.get(DBContactMessage, message_id)
    if not contact:
        return jsonify({'error': 'Message not found'}), 404

    db.session.delete(contact)
    db.session.commit()
    return jsonify({'success': True})


# ==========================================
# PODCAST
# ==========================================

@public_bp.route('/podcast/apply', methods=['POST'])
def apply_to_podcast():
    """
    Podcast guest application

    POST /api/podcast/apply
    {
        "name": "...", "email": "...", "about": "...", "businesses": "...",
        "industry": "...", "vision": "...", "biggestChallenge": "...", "whyPodcast": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    if not all(isinstance(data.get(f), str) and data[f].strip() for f in DBPodcastApplication.FIELDS):
        return jsonify({'error': 'All fields are required'}), 400
    if not _valid_email(data['email']):
        return jsonify({'error': 'Valid email is required'}), 400

    application = DBPodcastApplication(data)
    db.session.add(application)
    db.session.commit()
    logger.info(f"Podcast application {application.id} from {application.email}")

    return jsonify({
        'success': True,
        'message': 'Application submitted successfully',
        'application': {'id': application.id}
    }), 201


@public_bp.route('/podcast/applications', methods=['GET'])
@token_required
def list_podcast_applications(current_user):
    applications = DBPodcastApplication.query.order_by(DBPodcastApplication.submitted_at.desc()).all()
    return jsonify({'applications': [a.to_dict() for a in applications]})


@public_bp.route('/podcast/applications', methods=['PUT'])
@token_required
def update_podcast_application(current_user):
    data = request.get_json(silent=True) or {}
    if not data.get('id') or not data.get('status'):
        return jsonify({'error': 'Application ID and status are required'}), 400
    if data['status'] not in ApplicationStatus.ALL:
        return jsonify({'error': f"Invalid status. Must be one of: {', '.join(ApplicationStatus.ALL)}"}), 400

    application = db.session.get(DBPodcastApplication, data['id'])
    if not application:
        return jsonify({'error': 'Application not found'}), 404

    application.status = data['status']
    db.session.commit()
    return jsonify({'application': application.to_dict()})
