"""
Brand Studio - Routes
API endpoint registration
"""
from flask import Flask


def register_routes(app: Flask):
    """Register all API blueprints"""

    from app.routes.auth import auth_bp
    from app.routes.users import users_bp
    from app.routes.blogs import blogs_bp
    from app.routes.public import public_bp
    from app.routes.newsletter import newsletter_bp
    from app.routes.social import social_bp
    from app.routes.email import email_bp
    from app.routes.ai import ai_bp
    from app.routes.media import media_bp
    from app.routes.cron import cron_bp
    from app.routes.scheduler import scheduler_bp

    # Register with /api prefix
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(blogs_bp, url_prefix='/api/blogs')
    app.register_blueprint(public_bp, url_prefix='/api')
    app.register_blueprint(newsletter_bp, url_prefix='/api')
    app.register_blueprint(social_bp, url_prefix='/api/social')
    app.register_blueprint(email_bp, url_prefix='/api/email')
    app.register_blueprint(ai_bp, url_prefix='/api/ai')
    app.register_blueprint(media_bp, url_prefix='/api/youtube')
    app.register_blueprint(cron_bp, url_prefix='/api/cron')
    app.register_blueprint(scheduler_bp, url_prefix='/api/scheduler')
