"""
Brand Studio - LinkedIn Publisher
Member posts through the versioned /rest/posts API
"""
import re
import logging
import requests
from typing import Dict, List, Optional
from urllib.parse import quote

from app.services.platforms import SocialPublishError, success_result, error_result, split_media
from app.utils import absolute_url

logger = logging.getLogger(__name__)

API_BASE = 'https://api.linkedin.com'
LINKEDIN_VERSION = '202411'
MAX_LENGTH = 3000

_MENTION_RE = re.compile(r'@\[[^\]]+\]\([^)]+\)')
_SPECIAL_RE = re.compile(r'([()*\[\]{}<>|~_])')
_POST_URN_RE = re.compile(r'urn:li:(share|ugcPost):(.+)')

# Search keyword rules for peopleTypeahead
_KEYWORD_CHARS_RE = re.compile(r"^[a-zA-Z\s'\-.]+$")
_KEYWORD_REPEAT_RE = re.compile(r"[. ]{2,}|['-]{2,}")


def _rest_headers(access_token: str) -> Dict[str, str]:
    return {
        'Authorization': f'Bearer {access_token}',
        'Content-Type': 'application/json',
        'X-Restli-Protocol-Version': '2.0.0',
        'Linkedin-Version': LINKEDIN_VERSION
    }


def escape_commentary(text: str) -> str:
    """
    Escape little-text-format control characters so LinkedIn does not
    truncate the post. Mention annotations @[Name](urn:li:...) pass through.
    """
    pieces = []
    last = 0
    for match in _MENTION_RE.finditer(text):
        pieces.append(_SPECIAL_RE.sub(r'\\\1', text[last:match.start()]))
        pieces.append(match.group(0))
        last = match.end()
    pieces.append(_SPECIAL_RE.sub(r'\\\1', text[last:]))
    escaped = ''.join(pieces).strip()

    if len(escaped) > MAX_LENGTH:
        raise SocialPublishError(
            f"Content length ({len(escaped)} characters after escaping) exceeds LinkedIn's "
            f"maximum limit of {MAX_LENGTH} characters. Please shorten your post."
        )
    return escaped


def extract_post_id(urn: str) -> str:
    """urn:li:share:123 -> 123"""
    match = _POST_URN_RE.match(urn or '')
    return match.group(2) if match else urn


def get_person_urn(access_token: str, connection=None) -> str:
    username = (getattr(connection, 'username', None) or '').strip()
    if username.startswith('urn:li:person:'):
        return username
    if username.isdigit():
        return f'urn:li:person:{username}'

    response = requests.get(f'{API_BASE}/v2/userinfo', headers={
        'Authorization': f'Bearer {access_token}'
    }, timeout=30)
    if not response.ok:
        raise SocialPublishError(f'Failed to get LinkedIn profile ({response.status_code})', response.status_code)
    sub = response.json().get('sub')
    if not sub:
        raise SocialPublishError('LinkedIn profile has no member id')
    return f'urn:li:person:{sub}'


def upload_media(access_token: str, url: str, owner_urn: str, kind: str = 'image') -> str:
    """Register an upload, PUT the bytes, and return the Posts API media URN"""
    recipe = 'urn:li:digitalmediaRecipe:feedshare-video' if kind == 'video' else 'urn:li:digitalmediaRecipe:feedshare-image'
    register = requests.post(
        f'{API_BASE}/v2/assets?action=registerUpload',
        headers={'Authorization': f'Bearer {access_token}', 'Content-Type': 'application/json'},
        json={
            'registerUploadRequest': {
                'recipes': [recipe],
                'owner': owner_urn,
                'serviceRelationships': [{
                    'relationshipType': 'OWNER',
                    'identifier': 'urn:li:userGeneratedContent'
                }]
            }
        },
        timeout=30
    )
    if not register.ok:
        raise SocialPublishError(f'Failed to register LinkedIn {kind} upload ({register.status_code}): {register.text[:200]}')

    value = register.json().get('value', {})
    mechanism = value.get('uploadMechanism', {}).get(
        'com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest', {})
    upload_url = mechanism.get('uploadUrl')
    asset_urn = value.get('asset', '')
    if not upload_url or not asset_urn:
        raise SocialPublishError(f'LinkedIn did not return an upload URL for the {kind}')

    source_url = absolute_url(url)
    download = requests.get(source_url, timeout=120)
    if not download.ok:
        raise SocialPublishError(f'Failed to download {kind} from {source_url} ({download.status_code})')

    headers = {k: str(v) for k, v in (mechanism.get('headers') or {}).items()}
    headers['Content-Type'] = download.headers.get('content-type') or ('video/mp4' if kind == 'video' else 'image/jpeg')
    upload = requests.put(upload_url, data=download.content, headers=headers, timeout=300)
    if not upload.ok:
        raise SocialPublishError(f'Failed to upload {kind} to LinkedIn ({upload.status_code}): {upload.text[:200]}')

    # Posts API expects urn:li:image / urn:li:video rather than digitalmediaAsset
    asset_id = asset_urn.replace('urn:li:digitalmediaAsset:', '')
    return f'urn:li:{kind}:{asset_id}' if asset_urn.startswith('urn:li:digitalmediaAsset:') else asset_urn


def build_post_body(author_urn: str, commentary: str, image_urns: List[str] = None,
                    video_urn: Optional[str] = None) -> Dict:
    body = {
        'author': author_urn,
        'commentary': commentary,
        'visibility': 'PUBLIC',
        'distribution': {
            'feedDistribution': 'MAIN_FEED',
            'targetEntities': [],
            'thirdPartyDistributionChannels': []
        },
        'lifecycleState': 'PUBLISHED',
        'isReshareDisabledByAuthor': False
    }
    image_urns = image_urns or []
    if video_urn:
        body['content'] = {'media': {'id': video_urn, 'title': 'Video post'}}
    elif len(image_urns) == 1:
        body['content'] = {'media': {'id': image_urns[0], 'title': 'Image post'}}
    elif image_urns:
        body['content'] = {'multiImage': {'images': [{'id': urn} for urn in image_urns]}}
    return body


def publish(content: str, access_token: str, connection=None, media_assets=None) -> Dict:
    """Publish a member post with optional images or a single video"""
    try:
        commentary = escape_commentary(content)
        author = get_person_urn(access_token, connection)

        images, videos = split_media(media_assets)
        image_urns = []
        video_urn = None
        if videos:
            video_urn = upload_media(access_token, videos[0], author, kind='video')
        else:
            for url in images:
                image_urns.append(upload_media(access_token, url, author, kind='image'))

        logger.info(f"Publishing to LinkedIn as {author} ({len(image_urns)} images, video={bool(video_urn)})")
        response = requests.post(
            f'{API_BASE}/rest/posts',
            headers=_rest_headers(access_token),
            json=build_post_body(author, commentary, image_urns, video_urn),
            timeout=30
        )

        if response.status_code == 401:
            return error_result('LinkedIn token expired - please reconnect')
        if not response.ok:
            logger.error(f"LinkedIn API error: {response.status_code} {response.text[:300]}")
            return error_result(f'LinkedIn API error ({response.status_code}): {response.text[:200]}')

        urn = response.headers.get('x-restli-id')
        if not urn and response.text:
            urn = response.json().get('id')
        if not urn:
            return error_result('LinkedIn did not return a post id')
        if not urn.startswith('urn:li:'):
            urn = f'urn:li:share:{urn}'
        return success_result(urn)

    except SocialPublishError as e:
        return error_result(e.message)
    except requests.RequestException as e:
        logger.error(f"LinkedIn publish error: {e}")
        return error_result(f'LinkedIn API error: {str(e)}')


def comment_on_post(access_token: str, post_urn: str, actor_urn: str, text: str) -> Dict:
    """Add a comment to a post as the given actor"""
    response = requests.post(
        f'{API_BASE}/rest/socialActions/{quote(post_urn, safe="")}/comments',
        headers=_rest_headers(access_token),
        json={'actor': actor_urn, 'object': post_urn, 'message': {'text': text}},
        timeout=30
    )
    if not response.ok:
        raise SocialPublishError(f'Failed to comment on LinkedIn post ({response.status_code}): {response.text[:200]}',
                                 response.status_code)
    return response.json() if response.text else {}


def validate_search_keywords(keywords: str) -> Optional[str]:
    """Return an error message, or None if the keywords are acceptable"""
    keywords = (keywords or '').strip()
    if len(keywords) < 3:
        return 'Keywords must be at least 3 characters'
    if not _KEYWORD_CHARS_RE.match(keywords):
        return 'Keywords may only contain letters, spaces, apostrophes, hyphens and dots'
    if _KEYWORD_REPEAT_RE.search(keywords):
        return 'Keywords may not contain consecutive special characters'
    if keywords.count(' ') > 1:
        return 'Keywords may contain at most one space'
    if (' ' in keywords or '.' in keywords) and len(keywords) < 6:
        return 'Keywords with a space or dot must be at least 6 characters'
    return None


def search_people(access_token: str, keywords: str, organization_urn: str) -> List[Dict]:
    """Typeahead search over an organization's followers, for @mentions"""
    error = validate_search_keywords(keywords)
    if error:
        raise SocialPublishError(error, status_code=400)

    response = requests.get(
        f'{API_BASE}/rest/peopleTypeahead',
        params={'q': 'organizationFollowers', 'keywords': keywords.strip(), 'organization': organization_urn},
        headers=_rest_headers(access_token),
        timeout=30
    )
    if response.status_code == 403:
        # Not an admin of the organization, or the product is not enabled
        logger.warning("LinkedIn people typeahead returned 403")
        return []
    if not response.ok:
        raise SocialPublishError(f'LinkedIn search failed ({response.status_code})', response.status_code)

    people = []
    for element in response.json().get('elements', []):
        people.append({
            'member': element.get('member'),
            'firstName': element.get('firstName'),
            'lastName': element.get('lastName'),
            'headline': element.get('headline')
        })
    return people
