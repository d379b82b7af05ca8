"""
Brand Studio - Newsletter Routes
Campaigns, subscriber groups and subscribers, mirrored with Sender.net
"""
from flask import Blueprint, request, jsonify
import json
import logging

import requests

from app.database import db
from app.models.db_models import (
    DBCampaign, DBGroup, DBSubscriber, DBBlog, CampaignStatus, SubscriberStatus
)
from app.routes.auth import token_required
from app.services.blog_service import build_campaign_html
from app.services.sender_service import (
    SenderError, get_sender_service, campaign_fields_from_remote, sync_message
)
from app.utils import safe_bool, parse_datetime

logger = logging.getLogger(__name__)

newsletter_bp = Blueprint('newsletter', __name__)

SENDER_ERRORS = (SenderError, requests.RequestException)

# camelCase request key -> DBCampaign attribute
CAMPAIGN_FIELDS = {
    'title': 'title',
    'subject': 'subject',
    'from': 'from_name',
    'preheader': 'preheader',
    'replyTo': 'reply_to',
    'contentType': 'content_type',
    'content': 'content',
    'googleAnalytics': 'google_analytics',
    'autoFollowupActive': 'auto_followup_active',
    'autoFollowupSubject': 'auto_followup_subject',
    'autoFollowupDelay': 'auto_followup_delay',
    'status': 'status',
}


def _apply_campaign_fields(campaign: DBCampaign, fields: dict):
    for attr, value in fields.items():
        if attr == 'groups':
            campaign.set_groups(value)
        elif attr == 'segments':
            campaign.set_segments(value)
        else:
            setattr(campaign, attr, value)


def _upsert_remote_campaign(remote: dict) -> DBCampaign:
    remote_id = str(remote.get('id'))
    campaign = DBCampaign.query.filter_by(sender_campaign_id=remote_id).first()
    if campaign is None:
        fields = campaign_fields_from_remote(remote)
        campaign = DBCampaign(subject=fields.pop('subject'), sender_campaign_id=remote_id)
        db.session.add(campaign)
    else:
        fields = campaign_fields_from_remote(remote, campaign.content)
    _apply_campaign_fields(campaign, fields)
    return campaign


def _create_remote_campaign(campaign: DBCampaign) -> dict:
    return get_sender_service().create_campaign(
        subject=campaign.subject,
        content=campaign.content,
        title=campaign.title,
        from_name=campaign.from_name,
        reply_to=campaign.reply_to,
        preheader=campaign.preheader,
        content_type=campaign.content_type or 'html',
        google_analytics=bool(campaign.google_analytics),
        auto_followup_active=bool(campaign.auto_followup_active),
        auto_followup_subject=campaign.auto_followup_subject,
        auto_followup_delay=campaign.auto_followup_delay,
        groups=campaign.get_groups() or None,
        segments=campaign.get_segments() or None
    )


# ==========================================
# CAMPAIGNS
# ==========================================

@newsletter_bp.route('/campaigns', methods=['GET'])
@token_required
def list_campaigns(current_user):
    """
    List campaigns, optionally pulling the latest state from Sender.net first

    GET /api/campaigns?sync=true&status=SENT
    """
    status = request.args.get('status')

    if safe_bool(request.args.get('sync')):
        try:
            for remote in get_sender_service().get_all_campaigns(100, status):
                if remote.get('id'):
                    _upsert_remote_campaign(remote)
            db.session.commit()
        except SENDER_ERRORS as e:
            db.session.rollback()
            logger.error(f"Error syncing campaigns from Sender.net: {e}")

    query = DBCampaign.query
    if status:
        query = query.filter(DBCampaign.status == status)
    campaigns = query.order_by(DBCampaign.created_at.desc()).all()
    return jsonify({'campaigns': [c.to_dict() for c in campaigns]})


@newsletter_bp.route('/campaigns', methods=['POST'])
@token_required
def create_campaign(current_user):
    """
    Create a campaign

    POST /api/campaigns
    {
        "subject": "...",
        "content": "<html>...</html>",
        "title": "...", "from": "...", "preheader": "...", "replyTo": "...",
        "groups": ["abc"], "segments": [],
        "createInSender": true
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get('subject') or not data.get('content'):
        return jsonify({'error': 'Subject and content are required'}), 400

    campaign = DBCampaign(subject=data['subject'])
    _apply_campaign_fields(campaign, {
        attr: data[key] for key, attr in CAMPAIGN_FIELDS.items() if key in data and key != 'status'
    })
    campaign.content_type = data.get('contentType') or 'html'
    campaign.set_groups(data.get('groups'))
    campaign.set_segments(data.get('segments'))
    campaign.status = CampaignStatus.DRAFT

    if data.get('blogId'):
        blog = db.session.get(DBBlog, data['blogId'])
        if not blog:
            return jsonify({'error': 'Blog not found'}), 404
        existing = DBCampaign.query.filter_by(blog_id=blog.id).first()
        if existing:
            return jsonify({'error': f"This blog is already linked to campaign: {existing.subject or existing.id}"}), 400
        campaign.blog_id = blog.id

    if data.get('createInSender'):
        try:
            remote = _create_remote_campaign(campaign)
        except SENDER_ERRORS as e:
            logger.error(f"Error creating campaign in Sender.net: {e}")
            return jsonify({'error': f"Failed to create campaign in Sender.net: {e}"}), 500
        campaign.sender_campaign_id = str(remote.get('id')) if remote.get('id') else None

    db.session.add(campaign)
    db.session.commit()
    return jsonify({'success': True, 'campaign': campaign.to_dict()}), 201


@newsletter_bp.route('/campaigns', methods=['DELETE'])
@token_required
def delete_campaigns(current_user):
    """DELETE /api/campaigns?ids=["camp_1","camp_2"]"""
    try:
        ids = json.loads(request.args.get('ids') or '')
    except ValueError:
        ids = None
    if not isinstance(ids, list) or not ids:
        return jsonify({'error': 'ids must be a JSON array of campaign IDs'}), 400

    campaigns = DBCampaign.query.filter(DBCampaign.id.in_([str(i) for i in ids])).all()

    remote_ids = [c.sender_campaign_id for c in campaigns if c.sender_campaign_id]
    if remote_ids:
        try:
            get_sender_service().delete_campaigns(remote_ids)
        except SENDER_ERRORS as e:
            logger.warning(f"Could not delete campaigns in Sender.net: {e}")

    for campaign in campaigns:
        db.session.delete(campaign)
    db.session.commit()
    return jsonify({'success': True, 'deleted': len(campaigns)})


@newsletter_bp.route('/campaigns/<campaign_id>', methods=['GET'])
@token_required
def get_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    if safe_bool(request.args.get('sync')) and campaign.sender_campaign_id:
        try:
            remote = get_sender_service().get_campaign(campaign.sender_campaign_id)
            _apply_campaign_fields(campaign, campaign_fields_from_remote(remote, campaign.content))
            db.session.commit()
        except SENDER_ERRORS as e:
            db.session.rollback()
            logger.error(f"Error syncing campaign {campaign.id} from Sender.net: {e}")

    return jsonify({'campaign': campaign.to_dict()})


@newsletter_bp.route('/campaigns/<campaign_id>', methods=['PUT'])
@token_required
def update_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    data = request.get_json(silent=True) or {}
    _apply_campaign_fields(campaign, {
        attr: data[key] for key, attr in CAMPAIGN_FIELDS.items() if key in data
    })
    if 'groups' in data:
        campaign.set_groups(data['groups'])
    if 'segments' in data:
        campaign.set_segments(data['segments'])
    if 'scheduleTime' in data:
        campaign.schedule_time = parse_datetime(data['scheduleTime'])

    db.session.commit()
    return jsonify({'success': True, 'campaign': campaign.to_dict()})


@newsletter_bp.route('/campaigns/<campaign_id>', methods=['DELETE'])
@token_required
def delete_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    if campaign.sender_campaign_id:
        try:
            get_sender_service().delete_campaigns([campaign.sender_campaign_id])
        except SENDER_ERRORS as e:
            logger.warning(f"Could not delete campaign {campaign.sender_campaign_id} in Sender.net: {e}")

    db.session.delete(campaign)
    db.session.commit()
    return jsonify({'success': True})


@newsletter_bp.route('/campaigns/<campaign_id>/send', methods=['POST'])
@token_required
def send_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if not campaign.sender_campaign_id:
        return jsonify({'error': 'Campaign must be created in Sender.net before sending'}), 400

    try:
        get_sender_service().send_campaign(campaign.sender_campaign_id)
    except SENDER_ERRORS as e:
        logger.error(f"Error sending campaign {campaign.id}: {e}")
        return jsonify({'error': f"Failed to send campaign: {e}"}), 500

    campaign.status = CampaignStatus.SENDING
    db.session.commit()
    logger.info(f"Campaign {campaign.id} sent by {current_user.email}")
    return jsonify({'success': True, 'message': 'Campaign is being sent', 'campaign': campaign.to_dict()})


@newsletter_bp.route('/campaigns/<campaign_id>/schedule', methods=['POST'])
@token_required
def schedule_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if not campaign.sender_campaign_id:
        return jsonify({'error': 'Campaign must be created in Sender.net before scheduling'}), 400

    data = request.get_json(silent=True) or {}
    when = parse_datetime(data.get('scheduleTime'))
    if not when:
        return jsonify({'error': 'Valid scheduleTime is required'}), 400

    try:
        get_sender_service().schedule_campaign(campaign.sender_campaign_id, when)
    except SENDER_ERRORS as e:
        logger.error(f"Error scheduling campaign {campaign.id}: {e}")
        return jsonify({'error': f"Failed to schedule campaign: {e}"}), 500

    campaign.status = CampaignStatus.SCHEDULED
    campaign.schedule_time = when
    db.session.commit()
    return jsonify({'success': True, 'campaign': campaign.to_dict()})


@newsletter_bp.route('/campaigns/<campaign_id>/schedule', methods=['DELETE'])
@token_required
def unschedule_campaign(current_user, campaign_id):
    campaign = db.session.get(DBCampaign, campaign_id)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if not campaign.sender_campaign_id:
        return jsonify({'error': 'Campaign is not linked to Sender.net'}), 400

    try:
        get_sender_service().cancel_scheduled_campaign(campaign.sender_campaign_id)
    except SENDER_ERRORS as e:
        logger.error(f"Error cancelling schedule for campaign {campaign.id}: {e}")
        return jsonify({'error': f"Failed to cancel scheduled campaign: {e}"}), 500

    campaign.status = CampaignStatus.DRAFT
    campaign.schedule_time = None
    db.session.commit()
    return jsonify({'success': True, 'campaign': campaign.to_dict()})


@newsletter_bp.route('/campaigns/from-blog', methods=['POST'])
@token_required
def create_campaign_from_blog(current_user):
    """
    Turn a blog post into a newsletter campaign

    POST /api/campaigns/from-blog
    {"blogId": "blog_abc", "subject": "...", "preheader": "...", "createInSender": true}
    """
    data = request.get_json(silent=True) or {}
    if not data.get('blogId'):
        return jsonify({'error': 'Blog ID is required'}), 400

    blog = db.session.get(DBBlog, data['blogId'])
    if not blog:
        return jsonify({'error': 'Blog not found'}), 404
    if DBCampaign.query.filter_by(blog_id=blog.id).first():
        return jsonify({'error': 'A campaign already exists for this blog'}), 400

    campaign = DBCampaign(
        subject=data.get('subject') or blog.title,
        title=blog.title,
        from_name=data.get('from'),
        preheader=data.get('preheader') or blog.excerpt,
        reply_to=data.get('replyTo'),
        content_type='html',
        content=build_campaign_html(blog),
        blog_id=blog.id
    )
    campaign.set_groups(data.get('groups'))

    if data.get('createInSender'):
        try:
            remote = _create_remote_campaign(campaign)
        except SENDER_ERRORS as e:
            logger.error(f"Error creating campaign in Sender.net: {e}")
            return jsonify({'error': f"Failed to create campaign in Sender.net: {e}"}), 500
        campaign.sender_campaign_id = str(remote.get('id')) if remote.get('id') else None

    db.session.add(campaign)
    db.session.commit()
    logger.info(f"Campaign {campaign.id} created from blog {blog.slug}")
    return jsonify({'success': True, 'campaign': campaign.to_dict()}), 201


@newsletter_bp.route('/campaigns/link-blog', methods=['POST'])
@token_required
def link_blog(current_user):
    data = request.get_json(silent=True) or {}
    if not data.get('blogId') or not data.get('campaignId'):
        return jsonify({'error': 'Blog ID and Campaign ID are required'}), 400

    blog = db.session.get(DBBlog, data['blogId'])
    if not blog:
        return jsonify({'error': 'Blog not found'}), 404
    campaign = db.session.get(DBCampaign, data['campaignId'])
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    existing = DBCampaign.query.filter(DBCampaign.blog_id == blog.id, DBCampaign.id != campaign.id).first()
    if existing:
        return jsonify({'error': f"This blog is already linked to campaign: {existing.subject or existing.id}"}), 400
    if campaign.blog_id and campaign.blog_id != blog.id:
        return jsonify({'error': 'This campaign is already linked to a blog'}), 400

    campaign.blog_id = blog.id
    db.session.commit()
    return jsonify({'success': True, 'campaign': campaign.to_dict()})


# ==========================================
# GROUPS
# ==========================================

@newsletter_bp.route('/groups', methods=['GET'])
@token_required
def list_groups(current_user):
    if safe_bool(request.args.get('sync')):
        try:
            for remote in get_sender_service().get_all_groups():
                if not remote.get('id'):
                    continue
                remote_id = str(remote['id'])
                group = DBGroup.query.filter_by(sender_group_id=remote_id).first()
                if group is None:
                    group = DBGroup(title=remote.get('title') or 'Untitled', sender_group_id=remote_id)
                    db.session.add(group)
                group.apply_sender_stats(remote)
            db.session.commit()
        except SENDER_ERRORS as e:
            db.session.rollback()
            logger.error(f"Error syncing groups from Sender.net: {e}")

    groups = DBGroup.query.order_by(DBGroup.title).all()
    return jsonify({'groups': [g.to_dict() for g in groups]})


@newsletter_bp.route('/groups', methods=['POST'])
@token_required
def create_group(current_user):
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    if not title:
        return jsonify({'error': 'Title is required'}), 400

    group = DBGroup(title=title)
    if data.get('createInSender'):
        try:
            remote = get_sender_service().create_group(title)
        except SENDER_ERRORS as e:
            logger.error(f"Error creating group in Sender.net: {e}")
            return jsonify({'error': f"Failed to create group in Sender.net: {e}"}), 500
        group.sender_group_id = str(remote['id'])
        group.apply_sender_stats(remote)

    db.session.add(group)
    db.session.commit()
    return jsonify({'success': True, 'group': group.to_dict()}), 201


@newsletter_bp.route('/groups/<group_id>', methods=['GET'])
@token_required
def get_group(current_user, group_id):
    group = db.session.get(DBGroup, group_id)
    if not group:
        return jsonify({'error': 'Group not found'}), 404
    return jsonify({'group': group.to_dict()})


@newsletter_bp.route('/groups/<group_id>', methods=['PUT'])
@token_required
def update_group(current_user, group_id):
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    if not title:
        return jsonify({'error': 'Title is required'}), 400

    group = db.session.get(DBGroup, group_id)
    if not group:
        return jsonify({'error': 'Group not found'}), 404

    if group.sender_group_id:
        try:
            get_sender_service().update_group(group.sender_group_id, title)
        except SENDER_ERRORS as e:
            logger.warning(f"Could not update group {group.sender_group_id} in Sender.net: {e}")

    group.title = title
    db.session.commit()
    return jsonify({'success': True, 'group': group.to_dict()})


@newsletter_bp.route('/groups/<group_id>', methods=['DELETE'])
@token_required
def delete_group(current_user, group_id):
    group = db.session.get(DBGroup, group_id)
    if not group:
        return jsonify({'error': 'Group not found'}), 404

    if group.sender_group_id:
        try:
            get_sender_service().delete_group(
                group.sender_group_id,
                delete_subscribers=safe_bool(request.args.get('delete_subscribers'))
            )
        except SENDER_ERRORS as e:
            logger.warning(f"Could not delete group {group.sender_group_id} in Sender.net: {e}")

    db.session.delete(group)
    db.session.commit()
    return jsonify({'success': True})


# ==========================================
# SUBSCRIBERS
# ==========================================

@newsletter_bp.route('/subscribers', methods=['GET'])
@token_required
def list_subscribers(current_user):
    subscribers = DBSubscriber.query.order_by(DBSubscriber.subscribed_at.desc()).all()
    return jsonify({'subscribers': [s.to_dict() for s in subscribers]})


@newsletter_bp.route('/subscribers/<subscriber_id>', methods=['PUT'])
@token_required
def update_subscriber(current_user, subscriber_id):
    subscriber = db.session.get(DBSubscriber, subscriber_id)
    if not subscriber:
        return jsonify({'error': 'Subscriber not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'email' in data:
        email = data['email']
        if not isinstance(email, str) or '@' not in email:
            return jsonify({'error': 'Valid email is required'}), 400
        email = email.strip().lower()
        clash = DBSubscriber.query.filter(DBSubscriber.email == email, DBSubscriber.id != subscriber.id).first()
        if clash:
            return jsonify({'error': 'Email already exists'}), 409
        subscriber.email = email
    if 'status' in data:
        if data['status'] not in SubscriberStatus.ALL:
            return jsonify({'error': 'Status must be "active" or "churned"'}), 400
        subscriber.status = data['status']

    db.session.commit()
    return jsonify({'subscriber': subscriber.to_dict()})


@newsletter_bp.route('/subscribers/<subscriber_id>', methods=['DELETE'])
@token_required
def delete_subscriber(current_user, subscriber_id):
    subscriber = db.session.get(DBSubscriber, subscriber_id)
    if not subscriber:
        return jsonify({'error': 'Subscriber not found'}), 404
    db.session.delete(subscriber)
    db.session.commit()
    return jsonify({'success': True})


def _subscriber_and_group(subscriber_id, group_id):
    """Returns (subscriber, group, error_response)"""
    if not group_id:
        return None, None, (jsonify({'error': 'Group ID is required'}), 400)
    subscriber = db.session.get(DBSubscriber, subscriber_id)
    if not subscriber:
        return None, None, (jsonify({'error': 'Subscriber not found'}), 404)
    group = db.session.get(DBGroup, group_id)
    if not group or not group.sender_group_id:
        return None, None, (jsonify({'error': 'Group not found or not synced with Sender.net'}), 404)
    return subscriber, group, None


@newsletter_bp.route('/subscribers/<subscriber_id>/groups', methods=['POST'])
@token_required
def add_subscriber_to_group(current_user, subscriber_id):
    data = request.get_json(silent=True) or {}
    subscriber, group, error = _subscriber_and_group(subscriber_id, data.get('groupId'))
    if error:
        return error

    try:
        get_sender_service().add_subscribers_to_group(group.sender_group_id, [subscriber.email])
    except SENDER_ERRORS as e:
        logger.error(f"Error adding {subscriber.email} to group {group.sender_group_id}: {e}")
        return jsonify({'error': f"Failed to add subscriber to group: {e}"}), 500

    return jsonify({'success': True, 'message': f"Added {subscriber.email} to {group.title}"})


@newsletter_bp.route('/subscribers/<subscriber_id>/groups', methods=['DELETE'])
@token_required
def remove_subscriber_from_group(current_user, subscriber_id):
    subscriber, group, error = _subscriber_and_group(subscriber_id, request.args.get('groupId'))
    if error:
        return error

    try:
        get_sender_service().remove_subscribers_from_group(group.sender_group_id, [subscriber.email])
    except SENDER_ERRORS as e:
        logger.error(f"Error removing {subscriber.email} from group {group.sender_group_id}: {e}")
        return jsonify({'error': f"Failed to remove subscriber from group: {e}"}), 500

    return jsonify({'success': True, 'message': f"Removed {subscriber.email} from {group.title}"})


@newsletter_bp.route('/subscribers/sync', methods=['POST'])
@token_required
def sync_subscribers(current_user):
    service = get_sender_service()
    if not service.is_configured():
        return jsonify({'error': 'Sender.net API key is not configured'}), 500

    result = service.sync_subscribers()
    return jsonify({**result, 'message': sync_message(result)})
