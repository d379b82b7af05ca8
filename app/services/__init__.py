"""
Brand Studio - Services
Business logic and external API integrations
"""
from app.services.oauth_service import OAuthService, get_oauth_service
from app.services.sender_service import SenderService, get_sender_service
from app.services.youtube_service import YouTubeService, get_youtube_service

__all__ = [
    'OAuthService',
    'get_oauth_service',
    'SenderService',
    'get_sender_service',
    'YouTubeService',
    'get_youtube_service'
]
