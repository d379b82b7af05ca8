"""
Brand Studio - Social Platform Publishers
One module per network; each exposes publish(content, access_token, connection, media_assets)
returning {'success': bool, 'post_id': str | None, 'error': str | None}
"""


class SocialPublishError(Exception):
    """Raised inside a platform module; converted to an error result by publish()"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def success_result(post_id):
    return {'success': True, 'post_id': post_id, 'error': None}


def error_result(message):
    return {'success': False, 'post_id': None, 'error': message}


def split_media(media_assets):
    """Partition media assets into (images, videos) lists of URLs"""
    images = [a.get('url') for a in media_assets or [] if a.get('type') == 'image' and a.get('url')]
    videos = [a.get('url') for a in media_assets or [] if a.get('type') == 'video' and a.get('url')]
    return images, videos
