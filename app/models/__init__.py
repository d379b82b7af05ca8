"""
Brand Studio - Data Models
SQLAlchemy ORM models for PostgreSQL
"""
from app.models.db_models import (
    DBUser as User,
    DBBlog as Blog,
    DBSubscriber as Subscriber,
    DBCampaign as Campaign,
    DBSocialPost as SocialPost,
    DBEmail as Email,
    DBEmailTask as EmailTask,
    DBAiIntegration as AiIntegration,
    UserRole,
    CampaignStatus,
    PostStatus
)

__all__ = [
    'User',
    'Blog',
    'Subscriber',
    'Campaign',
    'SocialPost',
    'Email',
    'EmailTask',
    'AiIntegration',
    'UserRole',
    'CampaignStatus',
    'PostStatus'
]
