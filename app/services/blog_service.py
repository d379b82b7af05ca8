"""
Brand Studio - Blog Service
Slug allocation and the newsletter rendition of a journal article
"""
import re
import logging
from typing import Optional

from app.models.db_models import DBBlog
from app.utils import slugify, unique_slug, get_site_url

logger = logging.getLogger(__name__)

SUBSCRIBE_PLACEHOLDERS = [
    re.compile(r'<div\s+class=["\']subscribe-snippet-placeholder(?:-inline)?["\'][^>]*></div>', re.IGNORECASE),
    re.compile(r'<div\s+data-subscribe-snippet=["\'](?:inline|full)["\'][^>]*></div>', re.IGNORECASE),
    re.compile(r'&lt;div\s+class=["\']subscribe-snippet-placeholder(?:-inline)?["\'][^&]*&gt;&lt;/div&gt;',
               re.IGNORECASE),
    re.compile(r'___SUBSCRIBE_(?:INLINE|FULL)_MARKER___'),
]

IMG_SRC = re.compile(r'<img([^>]*?)\s+src=(["\']?)([^"\'\s>]+)\2([^>]*)>', re.IGNORECASE)

BRAND_COLOR = '#23C18C'


def slug_exists(slug: str, exclude_id: Optional[str] = None) -> bool:
    query = DBBlog.query.filter(DBBlog.slug == slug)
    if exclude_id:
        query = query.filter(DBBlog.id != exclude_id)
    return query.first() is not None


def allocate_slug(source: str, exclude_id: Optional[str] = None) -> str:
    """Unique slug for a title or requested slug; the blog itself does not count as a clash"""
    base = slugify(source) or 'post'
    return unique_slug(base, lambda candidate: slug_exists(candidate, exclude_id))


def strip_subscribe_placeholders(html: str) -> str:
    for pattern in SUBSCRIBE_PLACEHOLDERS:
        html = pattern.sub('', html)
    return html


def absolutize_images(html: str, site_url: str) -> str:
    """Rewrite relative <img src> values against the site URL"""
    def repl(match):
        before, quote, src, after = match.groups()
        if src.startswith(('http://', 'https://', '//')):
            return match.group(0)
        absolute = f"{site_url}{src}" if src.startswith('/') else f"{site_url}/{src}"
        quote = quote or '"'
        return f'<img{before} src={quote}{absolute}{quote}{after}>'

    return IMG_SRC.sub(repl, html)


def build_campaign_html(blog: DBBlog, site_url: Optional[str] = None) -> str:
    """
    Email body for a newsletter built from a blog post.

    Title and excerpt are left out of the body; they travel as the
    subject and preheader.
    """
    site_url = (site_url or get_site_url()).rstrip('/')
    content = absolutize_images(strip_subscribe_placeholders(blog.content or ''), site_url)

    hero = ''
    if blog.image_url:
        image = blog.image_url if blog.image_url.startswith('http') else f"{site_url}{blog.image_url}"
        hero = f'<img src="{image}" alt="{blog.title}" style="max-width: 100%; height: auto; margin-bottom: 20px;">'

    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
  </head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    {hero}
    <div style="margin: 30px 0;">
      {content}
    </div>
    <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee;">
      <a href="{site_url}/journal" style="display: inline-block; background-color: {BRAND_COLOR}; color: #000; padding: 12px 24px; text-decoration: none; font-weight: bold; text-transform: uppercase; letter-spacing: 0.1em; font-size: 12px;">Check Out Other Articles</a>
    </div>
    <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; text-align: center; font-size: 12px; color: #666;">
      <a href="{{{{unsubscribe_link}}}}" style="color: #666; text-decoration: underline;">{{{{unsubscribe_text}}}}</a>
    </div>
  </body>
</html>"""
