"""
Brand Studio - SQLAlchemy Database Models
PostgreSQL-backed models for production deployment
"""
from datetime import datetime
from typing import Optional, List
import uuid
import json

from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash, check_password_hash

from app.database import db
from app.utils import calculate_reading_time, isoformat as _iso


def safe_json_loads(value, default=None):
    """Safely parse JSON, returning default if None or invalid"""
    if default is None:
        default = []
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ============================================
# User Model
# ============================================

class UserRole:
    ADMIN = 'admin'
    EDITOR = 'editor'

    ALL = (ADMIN, EDITOR)


class DBUser(db.Model):
    """Admin panel account"""
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.EDITOR)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __init__(self, email: str, name: str, password: str, role: str = UserRole.EDITOR):
        self.id = _new_id('user')
        self.email = email.strip().lower()
        self.name = name
        self.role = role if role in UserRole.ALL else UserRole.EDITOR
        self.set_password(password)
        self.is_active = True
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def verify_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password or '')

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'lastLogin': _iso(self.last_login)
        }


# ============================================
# Blog Model
# ============================================

class DBBlog(db.Model):
    """Journal article shown on the public site"""
    __tablename__ = 'blogs'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), unique=True, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, default=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    seo: Mapped[str] = mapped_column(Text, default='{}')  # JSON object
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.id = _new_id('blog')
        if self.seo is None:
            self.seo = '{}'
        if self.published is None:
            self.published = False

    def get_seo(self) -> dict:
        return safe_json_loads(self.seo, {})

    def set_seo(self, seo: Optional[dict]):
        self.seo = json.dumps(seo or {})

    @property
    def reading_time(self) -> int:
        return calculate_reading_time(self.content)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'category': self.category,
            'excerpt': self.excerpt,
            'content': self.content,
            'imageUrl': self.image_url,
            'published': self.published,
            'publishedAt': _iso(self.published_at),
            'authorId': self.author_id,
            'seo': self.get_seo(),
            'readingTime': self.reading_time,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


# ============================================
# Audience: Subscribers, Contact, Podcast
# ============================================

class SubscriberStatus:
    ACTIVE = 'active'
    CHURNED = 'churned'

    ALL = (ACTIVE, CHURNED)


class DBSubscriber(db.Model):
    """Newsletter subscriber, mirrored to Sender.net"""
    __tablename__ = 'subscribers'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=SubscriberStatus.ACTIVE)
    synced_to_sender: Mapped[bool] = mapped_column(Boolean, default=False)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, email: str, status: str = SubscriberStatus.ACTIVE, synced_to_sender: bool = False):
        self.id = _new_id('sub')
        self.email = email.strip().lower()
        self.status = status
        self.synced_to_sender = synced_to_sender
        self.subscribed_at = datetime.utcnow()
        self.updated_at = self.subscribed_at

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'status': self.status,
            'syncedToSender': self.synced_to_sender,
            'subscribedAt': _iso(self.subscribed_at),
            'updatedAt': _iso(self.updated_at)
        }


class DBContactMessage(db.Model):
    __tablename__ = 'contact_messages'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    def __init__(self, name: str, email: str, message: str):
        self.id = _new_id('msg')
        self.name = name.strip()
        self.email = email.strip().lower()
        self.message = message.strip()
        self.read = False
        self.submitted_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'message': self.message,
            'read': self.read,
            'submittedAt': _iso(self.submitted_at)
        }


class ApplicationStatus:
    PENDING = 'pending'
    REVIEWED = 'reviewed'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    ALL = (PENDING, REVIEWED, APPROVED, REJECTED)


class DBPodcastApplication(db.Model):
    """Guest application for the podcast"""
    __tablename__ = 'podcast_applications'

    FIELDS = ('name', 'email', 'about', 'businesses', 'industry', 'vision', 'biggestChallenge', 'whyPodcast')

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    about: Mapped[str] = mapped_column(Text, nullable=False)
    businesses: Mapped[str] = mapped_column(Text, nullable=False)
    industry: Mapped[str] = mapped_column(String(255), nullable=False)
    vision: Mapped[str] = mapped_column(Text, nullable=False)
    biggest_challenge: Mapped[str] = mapped_column(Text, nullable=False)
    why_podcast: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ApplicationStatus.PENDING)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    def __init__(self, data: dict):
        self.id = _new_id('pod')
        self.name = data['name'].strip()
        self.email = data['email'].strip().lower()
        self.about = data['about'].strip()
        self.businesses = data['businesses'].strip()
        self.industry = data['industry'].strip()
        self.vision = data['vision'].strip()
        self.biggest_challenge = data['biggestChallenge'].strip()
        self.why_podcast = data['whyPodcast'].strip()
        self.status = ApplicationStatus.PENDING
        self.submitted_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'about': self.about,
            'businesses': self.businesses,
            'industry': self.industry,
            'vision': self.vision,
            'biggestChallenge': self.biggest_challenge,
            'whyPodcast': self.why_podcast,
            'status': self.status,
            'submittedAt': _iso(self.submitted_at)
        }


# ============================================
# Newsletter: Campaigns and Groups
# ============================================

class CampaignStatus:
    DRAFT = 'DRAFT'
    SCHEDULED = 'SCHEDULED'
    SENDING = 'SENDING'
    SENT = 'SENT'


class DBCampaign(db.Model):
    """Newsletter campaign, optionally backed by a Sender.net campaign"""
    __tablename__ = 'newsletter_campaigns'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    sender_campaign_id: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True, index=True)
    blog_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('blogs.id', ondelete='SET NULL'), unique=True, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    from_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    preheader: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reply_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content_type: Mapped[str] = mapped_column(String(20), default='html')
    content: Mapped[str] = mapped_column(Text, default='')
    google_analytics: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_followup_active: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_followup_subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    auto_followup_delay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    groups: Mapped[str] = mapped_column(Text, default='[]')  # JSON array of Sender group ids
    segments: Mapped[str] = mapped_column(Text, default='[]')  # JSON array
    status: Mapped[str] = mapped_column(String(20), default=CampaignStatus.DRAFT)
    schedule_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sent_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    recipient_count: Mapped[int] = mapped_column(Integer, default=0)
    sent_count: Mapped[int] = mapped_column(Integer, default=0)
    opens: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    bounces_count: Mapped[int] = mapped_column(Integer, default=0)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    blog = relationship('DBBlog', foreign_keys=[blog_id])

    def __init__(self, subject: str, **kwargs):
        super().__init__(subject=subject, **kwargs)
        self.id = _new_id('camp')
        if self.status is None:
            self.status = CampaignStatus.DRAFT
        if self.groups is None:
            self.groups = '[]'
        if self.segments is None:
            self.segments = '[]'
        if self.content is None:
            self.content = ''

    def get_groups(self) -> List[str]:
        return safe_json_loads(self.groups)

    def set_groups(self, groups: Optional[list]):
        self.groups = json.dumps([str(g) for g in (groups or [])])

    def get_segments(self) -> List[str]:
        return safe_json_loads(self.segments)

    def set_segments(self, segments: Optional[list]):
        self.segments = json.dumps([str(s) for s in (segments or [])])

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'senderCampaignId': self.sender_campaign_id,
            'blogId': self.blog_id,
            'title': self.title,
            'subject': self.subject,
            'from': self.from_name,
            'preheader': self.preheader,
            'replyTo': self.reply_to,
            'contentType': self.content_type,
            'content': self.content,
            'googleAnalytics': self.google_analytics,
            'autoFollowupActive': self.auto_followup_active,
            'autoFollowupSubject': self.auto_followup_subject,
            'autoFollowupDelay': self.auto_followup_delay,
            'groups': self.get_groups(),
            'segments': self.get_segments(),
            'status': self.status,
            'scheduleTime': _iso(self.schedule_time),
            'sentTime': _iso(self.sent_time),
            'recipientCount': self.recipient_count,
            'sentCount': self.sent_count,
            'opens': self.opens,
            'clicks': self.clicks,
            'bouncesCount': self.bounces_count,
            'syncedAt': _iso(self.synced_at),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class DBGroup(db.Model):
    """Subscriber group (Sender.net list)"""
    __tablename__ = 'subscriber_groups'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    sender_group_id: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_count: Mapped[int] = mapped_column(Integer, default=0)
    active_subscribers: Mapped[int] = mapped_column(Integer, default=0)
    unsubscribed_count: Mapped[int] = mapped_column(Integer, default=0)
    bounced_count: Mapped[int] = mapped_column(Integer, default=0)
    phone_count: Mapped[int] = mapped_column(Integer, default=0)
    active_phone_count: Mapped[int] = mapped_column(Integer, default=0)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, title: str, sender_group_id: Optional[str] = None):
        self.id = _new_id('grp')
        self.title = title
        self.sender_group_id = sender_group_id
        self.recipient_count = 0
        self.active_subscribers = 0
        self.unsubscribed_count = 0
        self.bounced_count = 0
        self.phone_count = 0
        self.active_phone_count = 0
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def apply_sender_stats(self, remote: dict):
        """Copy counters from a Sender.net group payload"""
        self.title = remote.get('title') or self.title
        self.recipient_count = int(remote.get('recipient_count') or 0)
        self.active_subscribers = int(remote.get('active_subscribers') or 0)
        self.unsubscribed_count = int(remote.get('unsubscribed_count') or 0)
        self.bounced_count = int(remote.get('bounced_count') or 0)
        self.phone_count = int(remote.get('phone_count') or 0)
        self.active_phone_count = int(remote.get('active_phone_count') or 0)
        self.synced_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'senderGroupId': self.sender_group_id,
            'title': self.title,
            'recipientCount': self.recipient_count,
            'activeSubscribers': self.active_subscribers,
            'unsubscribedCount': self.unsubscribed_count,
            'bouncedCount': self.bounced_count,
            'phoneCount': self.phone_count,
            'activePhoneCount': self.active_phone_count,
            'syncedAt': _iso(self.synced_at),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


# ============================================
# Social Publishing
# ============================================

class SocialPlatform:
    LINKEDIN = 'linkedin'
    TWITTER = 'twitter'
    INSTAGRAM = 'instagram'
    THREADS = 'threads'

    ALL = (LINKEDIN, TWITTER, INSTAGRAM, THREADS)


class PostStatus:
    DRAFT = 'draft'
    SCHEDULED = 'scheduled'
    PUBLISHED = 'published'
    FAILED = 'failed'


class DBSocialConnection(db.Model):
    """OAuth connection to one social platform (one per platform)"""
    __tablename__ = 'social_connections'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    platform: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Platform-specific identity, e.g. "username|ig_id|page_id" for Instagram
    username: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    profile_image: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    connected_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, platform: str, access_token: str, **kwargs):
        super().__init__(platform=platform, access_token=access_token, **kwargs)
        self.id = _new_id('conn')
        if self.is_active is None:
            self.is_active = True
        self.connected_at = datetime.utcnow()

    def to_dict(self) -> dict:
        # Tokens never leave the server
        return {
            'id': self.id,
            'platform': self.platform,
            'username': (self.username or '').split('|')[0] or None,
            'profileImage': self.profile_image,
            'isActive': self.is_active,
            'expiresAt': _iso(self.expires_at),
            'connectedAt': _iso(self.connected_at),
            'updatedAt': _iso(self.updated_at)
        }


class DBSocialPost(db.Model):
    """Scheduled multi-platform post"""
    __tablename__ = 'social_posts'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    media_assets: Mapped[str] = mapped_column(Text, default='[]')  # JSON [{type, url}]
    platforms: Mapped[str] = mapped_column(Text, default='[]')  # JSON array
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=PostStatus.SCHEDULED, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    published_on: Mapped[str] = mapped_column(Text, default='{}')  # JSON {platform: iso}
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, content: str, platforms: List[str], scheduled_for: datetime,
                 media_assets: Optional[list] = None, status: str = PostStatus.SCHEDULED,
                 created_by: Optional[str] = None):
        self.id = _new_id('post')
        self.content = content
        self.set_platforms(platforms)
        self.set_media_assets(media_assets)
        self.scheduled_for = scheduled_for
        self.status = status
        self.created_by = created_by
        self.published_on = '{}'
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def get_platforms(self) -> List[str]:
        return safe_json_loads(self.platforms)

    def set_platforms(self, platforms: Optional[list]):
        self.platforms = json.dumps(list(platforms or []))

    def get_media_assets(self) -> List[dict]:
        return safe_json_loads(self.media_assets)

    def set_media_assets(self, assets: Optional[list]):
        self.media_assets = json.dumps(list(assets or []))

    def get_published_on(self) -> dict:
        return safe_json_loads(self.published_on, {})

    def set_published_on(self, value: dict):
        self.published_on = json.dumps(value or {})

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'content': self.content,
            'mediaAssets': self.get_media_assets(),
            'platforms': self.get_platforms(),
            'scheduledFor': _iso(self.scheduled_for),
            'status': self.status,
            'createdBy': self.created_by,
            'publishedAt': _iso(self.published_at),
            'publishedOn': self.get_published_on(),
            'errorMessage': self.error_message,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


# ============================================
# Gmail Inbox and Tasks
# ============================================

class DBGoogleConnection(db.Model):
    """OAuth connection to the owner's Gmail account"""
    __tablename__ = 'google_connections'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    connected_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, email: str, access_token: str, refresh_token: Optional[str] = None,
                 expires_at: Optional[datetime] = None):
        self.id = _new_id('gconn')
        self.email = email
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.is_active = True
        self.connected_at = datetime.utcnow()
        self.updated_at = self.connected_at

    def to_dict(self) -> dict:
        return {
            'connected': bool(self.is_active),
            'email': self.email,
            'connectedAt': _iso(self.connected_at)
        }


class DBEmail(db.Model):
    """Message mirrored from Gmail"""
    __tablename__ = 'emails'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    gmail_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    thread_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    subject: Mapped[str] = mapped_column(Text, default='(No Subject)')
    from_address: Mapped[str] = mapped_column(Text, default='')
    to_address: Mapped[str] = mapped_column(Text, default='')
    snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_analyzed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_irrelevant: Mapped[bool] = mapped_column(Boolean, default=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tasks = relationship('DBEmailTask', back_populates='email', cascade='all, delete-orphan')

    def __init__(self, gmail_id: str, **kwargs):
        super().__init__(gmail_id=gmail_id, **kwargs)
        self.id = _new_id('email')
        now = datetime.utcnow()
        if self.is_read is None:
            self.is_read = False
        if self.is_analyzed is None:
            self.is_analyzed = False
        if self.is_irrelevant is None:
            self.is_irrelevant = False
        if self.received_at is None:
            self.received_at = now
        self.synced_at = now
        if self.last_synced_at is None:
            self.last_synced_at = now

    @property
    def thread_key(self) -> str:
        return self.thread_id or self.id

    def to_dict(self, include_body: bool = True) -> dict:
        data = {
            'id': self.id,
            'gmailId': self.gmail_id,
            'threadId': self.thread_id,
            'subject': self.subject,
            'from': self.from_address,
            'to': self.to_address,
            'snippet': self.snippet,
            'receivedAt': _iso(self.received_at),
            'isRead': self.is_read,
            'isAnalyzed': self.is_analyzed,
            'isIrrelevant': self.is_irrelevant,
            'syncedAt': _iso(self.synced_at),
            'lastSyncedAt': _iso(self.last_synced_at)
        }
        if include_body:
            data['body'] = self.body
            data['bodyText'] = self.body_text
        return data


class TaskPriority:
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'

    ALL = (LOW, MEDIUM, HIGH)


class TaskStatus:
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'

    ALL = (PENDING, IN_PROGRESS, COMPLETED)


class DBEmailTask(db.Model):
    """Action item extracted from an email thread by AI"""
    __tablename__ = 'email_tasks'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    email_id: Mapped[str] = mapped_column(String(50), ForeignKey('emails.id', ondelete='CASCADE'), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriority.MEDIUM)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.PENDING)
    ai_analysis: Mapped[str] = mapped_column(Text, default='{}')  # JSON
    external_task_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    email = relationship('DBEmail', back_populates='tasks')

    def __init__(self, email_id: str, title: str, description: Optional[str] = None,
                 priority: str = TaskPriority.MEDIUM, ai_analysis: Optional[dict] = None):
        self.id = _new_id('task')
        self.email_id = email_id
        self.title = title
        self.description = description
        self.priority = priority if priority in TaskPriority.ALL else TaskPriority.MEDIUM
        self.status = TaskStatus.PENDING
        self.ai_analysis = json.dumps(ai_analysis or {})
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'emailId': self.email_id,
            'title': self.title,
            'description': self.description,
            'priority': self.priority,
            'status': self.status,
            'aiAnalysis': safe_json_loads(self.ai_analysis, {}),
            'externalTaskId': self.external_task_id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }
        if self.email is not None:
            data['email'] = {
                'id': self.email.id,
                'subject': self.email.subject,
                'from': self.email.from_address,
                'threadId': self.email.thread_id,
                'receivedAt': _iso(self.email.received_at)
            }
        return data


class DBEmailCronJob(db.Model):
    """Settings for the periodic inbox sync/analysis job (single row)"""
    __tablename__ = 'email_cron_jobs'

    DEFAULT_SCHEDULE = '0 */6 * * *'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    schedule: Mapped[str] = mapped_column(String(100), default=DEFAULT_SCHEDULE)
    sync_emails: Mapped[bool] = mapped_column(Boolean, default=True)
    analyze_emails: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_integration_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self):
        self.id = _new_id('ecron')
        self.is_enabled = False
        self.schedule = self.DEFAULT_SCHEDULE
        self.sync_emails = True
        self.analyze_emails = False
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'isEnabled': self.is_enabled,
            'schedule': self.schedule,
            'syncEmails': self.sync_emails,
            'analyzeEmails': self.analyze_emails,
            'aiIntegrationId': self.ai_integration_id,
            'lastRun': _iso(self.last_run),
            'updatedAt': _iso(self.updated_at)
        }


# ============================================
# AI Content
# ============================================

class AIProvider:
    OPENAI = 'openai'
    GOOGLE = 'google'
    ANTHROPIC = 'anthropic'

    ALL = (OPENAI, GOOGLE, ANTHROPIC)


class DBAiIntegration(db.Model):
    """Stored credentials for one AI provider"""
    __tablename__ = 'ai_integrations'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, name: str, provider: str, api_key: str, model: Optional[str] = None,
                 is_active: bool = True):
        self.id = _new_id('ai')
        self.name = name
        self.provider = provider
        self.api_key = api_key
        self.model = model
        self.is_active = is_active
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    @property
    def api_key_preview(self) -> str:
        return f"****{self.api_key[-4:]}" if self.api_key else ''

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'provider': self.provider,
            'model': self.model,
            'isActive': self.is_active,
            'apiKeyPreview': self.api_key_preview,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class IdeaStatus:
    DRAFT = 'draft'
    USED = 'used'
    ARCHIVED = 'archived'

    ALL = (DRAFT, USED, ARCHIVED)


class DBPostIdea(db.Model):
    __tablename__ = 'post_ideas'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    platforms: Mapped[str] = mapped_column(Text, default='[]')  # JSON array
    status: Mapped[str] = mapped_column(String(20), default=IdeaStatus.DRAFT)
    created_by: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, title: str, content: str, prompt: Optional[str] = None,
                 platforms: Optional[list] = None, created_by: Optional[str] = None):
        self.id = _new_id('idea')
        self.title = title
        self.content = content
        self.prompt = prompt
        self.set_platforms(platforms)
        self.status = IdeaStatus.DRAFT
        self.created_by = created_by
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at

    def set_platforms(self, platforms: Optional[list]):
        if isinstance(platforms, str):
            platforms = [platforms]
        self.platforms = json.dumps(list(platforms or []))

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'prompt': self.prompt,
            'content': self.content,
            'platforms': safe_json_loads(self.platforms),
            'status': self.status,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


# ============================================
# Media: YouTube
# ============================================

class DBSiteConfig(db.Model):
    """Site-wide settings (single row)"""
    __tablename__ = 'site_config'

    DEFAULT_CRON = '0 2 * * *'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    youtube_channel_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cron_schedule: Mapped[str] = mapped_column(String(100), default=DEFAULT_CRON)
    last_video_fetch: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self):
        self.id = 'site'
        self.cron_schedule = self.DEFAULT_CRON
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'youtubeChannelId': self.youtube_channel_id,
            'cronSchedule': self.cron_schedule,
            'lastVideoFetch': _iso(self.last_video_fetch),
            'updatedAt': _iso(self.updated_at)
        }


class DBYouTubeVideo(db.Model):
    __tablename__ = 'youtube_videos'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    video_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    channel_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __init__(self, video_id: str, title: str, **kwargs):
        super().__init__(video_id=video_id, title=title, **kwargs)
        self.id = _new_id('vid')
        self.fetched_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'videoId': self.video_id,
            'title': self.title,
            'description': self.description,
            'thumbnailUrl': self.thumbnail_url,
            'publishedAt': _iso(self.published_at),
            'durationSeconds': self.duration_seconds,
            'viewCount': self.view_count,
            'likeCount': self.like_count,
            'channelTitle': self.channel_title,
            'url': f"https://www.youtube.com/watch?v={self.video_id}"
        }
