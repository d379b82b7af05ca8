"""
Brand Studio - Authentication Routes
Login, logout, bootstrap and the auth decorators shared by every admin route
"""
from flask import Blueprint, request, jsonify, current_app
from functools import wraps
import hmac
import logging
import jwt
import os
import re
import secrets
import string
from datetime import datetime

from app.database import db
from app.models.db_models import DBUser, UserRole

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def validate_password(password):
    """
    Validate password meets security requirements.
    Returns: (is_valid: bool, error_message: str or None)
    """
    if not password:
        return False, "Password is required"
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not re.search(r'[A-Z]', password):
        return False, "Password must contain at least one uppercase letter"
    if not re.search(r'[a-z]', password):
        return False, "Password must contain at least one lowercase letter"
    if not re.search(r'[0-9]', password):
        return False, "Password must contain at least one number"
    return True, None


def _read_token():
    """Token from the auth cookie, else from a Bearer header"""
    token = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    if not token:
        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            token = auth_header.split(' ', 1)[1].strip()
    return token or None


def decode_token(token: str) -> dict:
    return jwt.decode(
        token,
        current_app.config['JWT_SECRET_KEY'],
        algorithms=['HS256'],
        issuer=current_app.config['JWT_ISSUER'],
        audience=current_app.config['JWT_AUDIENCE']
    )


def generate_token(user: DBUser) -> str:
    """Generate JWT token for user"""
    now = datetime.utcnow()
    payload = {
        'user_id': user.id,
        'email': user.email,
        'role': user.role,
        'iss': current_app.config['JWT_ISSUER'],
        'aud': current_app.config['JWT_AUDIENCE'],
        'iat': now,
        'exp': now + current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm='HS256')


def token_required(f):
    """Decorator to require valid JWT token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _read_token()
        if not token:
            return jsonify({'error': 'Unauthorized'}), 401

        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token has expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        current_user = db.session.get(DBUser, payload.get('user_id'))
        if not current_user:
            return jsonify({'error': 'User not found'}), 401
        if not current_user.is_active:
            return jsonify({'error': 'User is deactivated'}), 401

        return f(current_user, *args, **kwargs)

    return decorated


def optional_token(f):
    """Decorator that allows optional authentication - passes None if no token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        current_user = None
        token = _read_token()
        if token:
            try:
                payload = decode_token(token)
                current_user = db.session.get(DBUser, payload.get('user_id'))
                if current_user and not current_user.is_active:
                    current_user = None
            except jwt.InvalidTokenError:
                pass

        return f(current_user, *args, **kwargs)

    return decorated


def admin_required(f):
    """Decorator to require admin role"""
    @wraps(f)
    @token_required
    def decorated(current_user, *args, **kwargs):
        if current_user.role != UserRole.ADMIN:
            return jsonify({'error': 'Admin access required'}), 403
        return f(current_user, *args, **kwargs)
    return decorated


def cron_or_admin(f):
    """
    Let an external cron caller in with the X-Cron-Secret header,
    otherwise require an admin. current_user is None for cron calls.
    """
    admin_view = admin_required(f)

    @wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET') or ''
        supplied = request.headers.get('X-Cron-Secret', '')
        if secret and supplied and hmac.compare_digest(secret, supplied):
            return f(None, *args, **kwargs)
        return admin_view(*args, **kwargs)

    return decorated


def _set_auth_cookie(response, token: str):
    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        token,
        max_age=int(current_app.config['JWT_ACCESS_TOKEN_EXPIRES'].total_seconds()),
        httponly=True,
        secure=current_app.config.get('ENV') == 'production',
        samesite='Lax',
        path='/'
    )
    return response


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    User login

    POST /api/auth/login
    {
        "email": "user@example.com",
        "password": "Password123"
    }
    """
    data = request.get_json(silent=True) or {}

    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    user = DBUser.query.filter_by(email=data['email'].strip().lower()).first()
    if not user or not user.verify_password(data['password']):
        logger.warning(f"Failed login for {data['email']}")
        return jsonify({'error': 'Invalid email or password'}), 401

    if not user.is_active:
        return jsonify({'error': 'Account is deactivated'}), 401

    user.last_login = datetime.utcnow()
    db.session.commit()

    token = generate_token(user)
    response = jsonify({'token': token, 'user': user.to_dict()})
    return _set_auth_cookie(response, token)


@auth_bp.route('/logout', methods=['POST'])
def logout():
    response = jsonify({'success': True})
    response.delete_cookie(current_app.config['AUTH_COOKIE_NAME'], path='/')
    return response


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_current_user(current_user):
    """Get current authenticated user"""
    return jsonify({'user': current_user.to_dict()})


@auth_bp.route('/bootstrap', methods=['POST'])
def bootstrap_admin():
    """
    Create the first admin user. Only works while no admin exists.

    POST /api/auth/bootstrap
    {
        "email": "admin@example.com",
        "password": "Secure-password1",
        "name": "Admin User"
    }

    Without a body the credentials come from ADMIN_EMAIL / ADMIN_PASSWORD,
    and a password is generated (and returned once) when neither is set.
    """
    if DBUser.query.filter_by(role=UserRole.ADMIN).first():
        return jsonify({'error': 'Admin already exists. Use login instead.'}), 400

    data = request.get_json(silent=True) or {}
    email = data.get('email') or os.environ.get('ADMIN_EMAIL')
    if not email or '@' not in email:
        return jsonify({'error': 'A valid email is required'}), 400
    name = data.get('name') or 'Admin'

    password = data.get('password') or os.environ.get('ADMIN_PASSWORD')
    generated_password = None
    if not password:
        alphabet = string.ascii_letters + string.digits
        while True:
            candidate = ''.join(secrets.choice(alphabet) for _ in range(16))
            if validate_password(candidate)[0]:
                break
        generated_password = password = candidate
    else:
        is_valid, error_msg = validate_password(password)
        if not is_valid:
            return jsonify({'error': error_msg}), 400

    admin = DBUser(email=email, name=name, password=password, role=UserRole.ADMIN)
    db.session.add(admin)
    db.session.commit()
    logger.info(f"Bootstrapped admin user {admin.email}")

    token = generate_token(admin)
    body = {
        'success': True,
        'message': 'Admin user created successfully',
        'token': token,
        'user': admin.to_dict()
    }
    if generated_password:
        body['password'] = generated_password
        body['warning'] = 'SAVE THIS PASSWORD - it will not be shown again!'

    return _set_auth_cookie(jsonify(body), token), 201
