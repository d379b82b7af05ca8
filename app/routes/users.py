"""
Brand Studio - User Routes
Admin management of panel accounts
"""
from flask import Blueprint, request, jsonify
import logging

from app.database import db
from app.models.db_models import DBUser, UserRole
from app.routes.auth import admin_required, validate_password

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__)


@users_bp.route('', methods=['GET'])
@admin_required
def list_users(current_user):
    users = DBUser.query.order_by(DBUser.created_at.desc()).all()
    return jsonify({'users': [u.to_dict() for u in users]})


@users_bp.route('', methods=['POST'])
@admin_required
def create_user(current_user):
    """
    Create a user (admin only)

    POST /api/users
    {
        "email": "editor@example.com",
        "name": "Jane Editor",
        "password": "Password123",
        "role": "editor"
    }
    """
    data = request.get_json(silent=True) or {}

    for field in ('email', 'name', 'password', 'role'):
        if not data.get(field):
            return jsonify({'error': 'Email, name, password, and role are required'}), 400

    is_valid, error_msg = validate_password(data['password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    email = data['email'].strip().lower()
    if DBUser.query.filter_by(email=email).first():
        return jsonify({'error': 'User with this email already exists'}), 400

    role = UserRole.ADMIN if data['role'] == UserRole.ADMIN else UserRole.EDITOR
    user = DBUser(email=email, name=data['name'].strip(), password=data['password'], role=role)
    db.session.add(user)
    db.session.commit()
    logger.info(f"User {user.email} created by {current_user.email}")

    return jsonify({'user': user.to_dict()}), 201


@users_bp.route('/<user_id>', methods=['PUT'])
@admin_required
def update_user(current_user, user_id):
    user = db.session.get(DBUser, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    data = request.get_json(silent=True) or {}

    if data.get('email'):
        email = data['email'].strip().lower()
        clash = DBUser.query.filter(DBUser.email == email, DBUser.id != user.id).first()
        if clash:
            return jsonify({'error': 'User with this email already exists'}), 400
        user.email = email
    if data.get('name'):
        user.name = data['name'].strip()
    if data.get('role'):
        user.role = UserRole.ADMIN if data['role'] == UserRole.ADMIN else UserRole.EDITOR
    if 'isActive' in data:
        user.is_active = bool(data['isActive'])
    if data.get('password'):
        is_valid, error_msg = validate_password(data['password'])
        if not is_valid:
            return jsonify({'error': error_msg}), 400
        user.set_password(data['password'])

    db.session.commit()
    return jsonify({'user': user.to_dict()})


@users_bp.route('/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(current_user, user_id):
    user = db.session.get(DBUser, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if user.id == current_user.id:
        return jsonify({'error': 'You cannot delete your own account'}), 400

    db.session.delete(user)
    db.session.commit()
    logger.info(f"User {user.email} deleted by {current_user.email}")
    return jsonify({'success': True})
