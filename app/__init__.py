"""
Brand Studio - Personal Brand CMS
Public site API and admin panel backend
"""
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import logging

__version__ = "1.4.0"

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Running behind a reverse proxy (Render, Vercel rewrites)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # Load config
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from app.config import config
    # Use instance instead of class to support @property
    config_instance = config.get(config_name, config['default'])()
    app.config.from_object(config_instance)

    cors_origins = app.config.get('CORS_ORIGINS', '*')
    if cors_origins == '*' and app.config.get('ENV') == 'production':
        logger.warning("SECURITY: CORS_ORIGINS is set to '*' in production! Set specific origins.")
    CORS(app, origins=cors_origins, supports_credentials=cors_origins != '*')

    # Rate limiting
    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=["200 per day", "50 per hour"],
        storage_uri="memory://",
        enabled=app.config.get('RATELIMIT_ENABLED', True)
    )
    app.limiter = limiter

    # Initialize database
    from app.database import init_db
    init_db(app)

    # Register blueprints
    from app.routes import register_routes
    register_routes(app)

    # ==========================================
    # GLOBAL ERROR HANDLERS
    # ==========================================

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'error': 'Bad request',
            'message': str(error.description) if hasattr(error, 'description') else 'Invalid request'
        }), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({
            'error': 'Unauthorized',
            'message': 'Authentication required'
        }), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({
            'error': 'Forbidden',
            'message': 'Access denied'
        }), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'Not found',
            'message': 'The requested resource was not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'Method not allowed',
            'message': f'{request.method} is not supported on this endpoint'
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'An unexpected error occurred'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Catch-all for unhandled exceptions"""
        if isinstance(error, HTTPException):
            return jsonify({
                'error': error.name,
                'message': error.description
            }), error.code

        logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({
            'error': 'Server error',
            'message': 'An unexpected error occurred'
        }), 500

    @app.after_request
    def security_headers(response):
        if request.path.startswith('/api'):
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    # Health check
    @app.route('/health')
    @limiter.exempt
    def health():
        try:
            from app.database import db
            db.session.execute(db.text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            db_status = f'error: {str(e)[:50]}'

        return {
            'status': 'healthy' if db_status == 'connected' else 'degraded',
            'version': __version__,
            'database': db_status
        }

    # API info endpoint
    @app.route('/api')
    def api_info():
        return {
            'name': 'Brand Studio API',
            'version': __version__,
            'status': 'running',
            'endpoints': {
                'auth': '/api/auth',
                'users': '/api/users',
                'blogs': '/api/blogs',
                'subscribe': '/api/subscribe',
                'contact': '/api/contact',
                'podcast': '/api/podcast',
                'campaigns': '/api/campaigns',
                'groups': '/api/groups',
                'subscribers': '/api/subscribers',
                'social': '/api/social',
                'email': '/api/email',
                'ai': '/api/ai',
                'youtube': '/api/youtube',
                'cron': '/api/cron',
                'scheduler': '/api/scheduler'
            }
        }

    # Initialize background scheduler (only when explicitly enabled)
    if not app.config.get('TESTING') and os.environ.get('ENABLE_SCHEDULER') == '1':
        try:
            from app.services.scheduler_service import init_scheduler
            init_scheduler(app)
            app.logger.info("Background scheduler started")
        except Exception as e:
            app.logger.warning(f"Could not start scheduler: {e}")

    # Check for admin user on startup
    if not app.config.get('TESTING'):
        with app.app_context():
            try:
                from app.models.db_models import DBUser, UserRole
                admin_count = DBUser.query.filter_by(role=UserRole.ADMIN).count()
                if admin_count == 0:
                    app.logger.warning("⚠ No admin user exists! Run: python scripts/create_admin.py")
            except Exception as e:
                app.logger.warning(f"Could not check admin users: {e}")

    return app
