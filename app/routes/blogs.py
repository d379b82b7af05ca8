"""
Brand Studio - Blog Routes
Journal articles: public reads, authenticated writes
"""
from flask import Blueprint, request, jsonify
from datetime import datetime
import logging

from app.database import db
from app.models.db_models import DBBlog, DBCampaign
from app.routes.auth import token_required, optional_token
from app.services.blog_service import allocate_slug

logger = logging.getLogger(__name__)

blogs_bp = Blueprint('blogs', __name__)

REQUIRED_FIELDS = ('title', 'category', 'excerpt', 'content', 'imageUrl')


def _visible(blog, current_user) -> bool:
    return blog is not None and (blog.published or current_user is not None)


@blogs_bp.route('', methods=['GET'])
@optional_token
def list_blogs(current_user):
    """
    List blogs, newest first

    GET /api/blogs?category=Leadership
    Anonymous callers only see published posts.
    """
    query = DBBlog.query
    if current_user is None:
        query = query.filter(DBBlog.published.is_(True))

    category = request.args.get('category')
    if category:
        query = query.filter(DBBlog.category == category)

    blogs = query.order_by(DBBlog.published_at.desc().nullslast(), DBBlog.created_at.desc()).all()
    return jsonify({'blogs': [b.to_dict() for b in blogs]})


@blogs_bp.route('/categories', methods=['GET'])
def list_categories():
    rows = db.session.query(DBBlog.category).filter(DBBlog.published.is_(True)).distinct().all()
    return jsonify({'categories': sorted(r[0] for r in rows if r[0])})


@blogs_bp.route('/<blog_id>', methods=['GET'])
@optional_token
def get_blog(current_user, blog_id):
    blog = db.session.get(DBBlog, blog_id)
    if not _visible(blog, current_user):
        return jsonify({'error': 'Blog not found'}), 404
    return jsonify({'blog': blog.to_dict()})


@blogs_bp.route('/slug/<slug>', methods=['GET'])
@optional_token
def get_blog_by_slug(current_user, slug):
    blog = DBBlog.query.filter_by(slug=slug).first()
    if not _visible(blog, current_user):
        return jsonify({'error': 'Blog not found'}), 404
    return jsonify({'blog': blog.to_dict()})


@blogs_bp.route('', methods=['POST'])
@token_required
def create_blog(current_user):
    """
    Create a blog post

    POST /api/blogs
    {
        "title": "Why I Started",
        "category": "Leadership",
        "excerpt": "...",
        "content": "<p>...</p>",
        "imageUrl": "/uploads/cover.jpg",
        "published": true,
        "slug": "optional-custom-slug",
        "seo": {"metaTitle": "...", "metaDescription": "..."}
    }
    """
    data = request.get_json(silent=True) or {}

    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        return jsonify({'error': f"Missing required fields: {', '.join(missing)}"}), 400
    if not isinstance(data['title'], str) or not isinstance(data['category'], str):
        return jsonify({'error': 'Title and category must be strings'}), 400
    if not data['title'].strip():
        return jsonify({'error': 'Missing required fields: title'}), 400

    published = bool(data.get('published', False))
    blog = DBBlog(
        title=data['title'].strip(),
        slug=allocate_slug(data.get('slug') or data['title']),
        category=data['category'].strip(),
        excerpt=data['excerpt'],
        content=data['content'],
        image_url=data['imageUrl'],
        published=published,
        published_at=datetime.utcnow() if published else None,
        author_id=current_user.id
    )
    blog.set_seo(data.get('seo'))

    db.session.add(blog)
    db.session.commit()
    logger.info(f"Blog {blog.slug} created by {current_user.email}")
    return jsonify({'blog': blog.to_dict()}), 201


@blogs_bp.route('/<blog_id>', methods=['PUT'])
@token_required
def update_blog(current_user, blog_id):
    blog = db.session.get(DBBlog, blog_id)
    if not blog:
        return jsonify({'error': 'Blog not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'title' in data and data['title'] is not None and not isinstance(data['title'], str):
        return jsonify({'error': 'Title must be a string'}), 400

    new_slug = data.get('slug')
    if new_slug and new_slug != blog.slug:
        blog.slug = allocate_slug(new_slug, exclude_id=blog.id)
    elif data.get('title') and data['title'] != blog.title and not new_slug:
        blog.slug = allocate_slug(data['title'], exclude_id=blog.id)

    if data.get('title'):
        blog.title = data['title'].strip()
    for key, attr in (('category', 'category'), ('excerpt', 'excerpt'),
                      ('content', 'content'), ('imageUrl', 'image_url')):
        if key in data and data[key] is not None:
            setattr(blog, attr, data[key])
    if 'seo' in data:
        blog.set_seo(data['seo'])

    if 'published' in data:
        published = bool(data['published'])
        if published and not blog.published_at:
            blog.published_at = datetime.utcnow()
        blog.published = published

    blog.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'blog': blog.to_dict()})


@blogs_bp.route('/<blog_id>', methods=['DELETE'])
@token_required
def delete_blog(current_user, blog_id):
    blog = db.session.get(DBBlog, blog_id)
    if not blog:
        return jsonify({'error': 'Blog not found'}), 404

    DBCampaign.query.filter_by(blog_id=blog.id).update({'blog_id': None})
    db.session.delete(blog)
    db.session.commit()
    logger.info(f"Blog {blog.slug} deleted by {current_user.email}")
    return jsonify({'success': True})
