"""
Brand Studio - Utilities
Request parsing helpers plus slug, HTML and date helpers shared by routes and services
"""
import math
import os
import re
from datetime import datetime, timezone
from html import unescape

from flask import current_app, has_app_context


def safe_int(value, default=0, min_val=None, max_val=None):
    """
    Safely parse an integer from a request parameter.

    Args:
        value: The value to parse (string or None)
        default: Default value if parsing fails
        min_val: Minimum allowed value (optional)
        max_val: Maximum allowed value (optional)

    Returns:
        int: Parsed integer or default
    """
    try:
        result = int(value) if value is not None else default
    except (ValueError, TypeError):
        result = default

    if min_val is not None:
        result = max(result, min_val)
    if max_val is not None:
        result = min(result, max_val)

    return result


def safe_bool(value, default=False):
    """
    Safely parse a boolean from a request parameter.
    Accepts: true, false, 1, 0, yes, no (case insensitive)
    """
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')

    return bool(value)


def get_pagination_params(request, default_limit=20, max_limit=100):
    """
    Get pagination parameters from request.
    Accepts either limit/offset or page/pageSize.

    Returns:
        tuple: (limit, offset, page)
    """
    limit_arg = request.args.get('pageSize') or request.args.get('limit')
    limit = safe_int(limit_arg, default_limit, min_val=1, max_val=max_limit)
    offset = safe_int(request.args.get('offset'), 0, min_val=0)
    page = safe_int(request.args.get('page'), 1, min_val=1)

    if request.args.get('page') and not request.args.get('offset'):
        offset = (page - 1) * limit

    return limit, offset, page


def get_site_url():
    """Public site base URL without a trailing slash"""
    if has_app_context():
        url = current_app.config.get('SITE_URL') or ''
    else:
        url = os.environ.get('SITE_URL', 'http://localhost:3000')
    return url.rstrip('/')


# ==========================================
# SLUGS AND HTML
# ==========================================

_SLUG_RE = re.compile(r'[^a-z0-9]+')
_TAG_RE = re.compile(r'<[^>]+>')
_WS_RE = re.compile(r'\s+')


def slugify(text):
    """'Hello, World!' -> 'hello-world'"""
    return _SLUG_RE.sub('-', (text or '').lower()).strip('-')


def unique_slug(base, exists):
    """
    Return base, or base-1, base-2... for the first candidate
    for which exists(candidate) is False.
    """
    slug = base
    counter = 1
    while exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def strip_html(html):
    """Remove tags and collapse whitespace"""
    text = _TAG_RE.sub(' ', html or '')
    return _WS_RE.sub(' ', unescape(text)).strip()


def calculate_reading_time(html, words_per_minute=200):
    """Minutes to read, never less than one"""
    words = len([w for w in strip_html(html).split(' ') if w])
    return max(1, math.ceil(words / words_per_minute))


# ==========================================
# DATES
# ==========================================

def parse_datetime(value):
    """
    Parse an ISO-8601 string (or datetime) into a naive UTC datetime.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt):
    return dt.isoformat() if dt else None


def absolute_url(url, base=None):
    """Resolve a site-relative media URL ('/uploads/x.jpg') against the public site"""
    if not url or url.startswith(('http://', 'https://')):
        return url
    base = (base or get_site_url()).rstrip('/')
    return f"{base}{url}" if url.startswith('/') else f"{base}/{url}"
