"""
Brand Studio - Sender.net Service
Newsletter campaigns, groups and subscriber sync against the Sender.net v2 API
"""
import os
import time
import logging
import requests
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

API_BASE = 'https://api.sender.net/v2'

UNSUBSCRIBE_FOOTER = """
    <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; text-align: center; font-size: 12px; color: #666;">
      <a href="{{unsubscribe_link}}" style="color: #666; text-decoration: underline;">{{unsubscribe_text}}</a>
    </div>"""


class SenderError(Exception):
    """Sender.net API error"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def ensure_unsubscribe_link(html: str) -> str:
    """Add the unsubscribe footer unless the template already has the merge tags"""
    if '{{unsubscribe_link}}' in html or '{{unsubscribe_text}}' in html:
        return html
    if '</body>' in html:
        return html.replace('</body>', f'{UNSUBSCRIBE_FOOTER}\n    </body>', 1)
    if '</html>' in html:
        return html.replace('</html>', f'{UNSUBSCRIBE_FOOTER}\n      </html>', 1)
    return html + UNSUBSCRIBE_FOOTER


def map_sender_status(remote_status: Optional[str]) -> str:
    """Sender.net 'active' stays active; unsubscribed, bounced and anything else is churned"""
    return 'active' if remote_status == 'active' else 'churned'


class SenderService:
    """Thin client for the Sender.net REST API"""

    page_delay = 0.2

    @property
    def api_key(self):
        return os.getenv('SENDER_API_KEY', '')

    @property
    def list_id(self):
        return os.getenv('SENDER_LIST_ID', '')

    @property
    def from_name(self):
        return os.getenv('SENDER_FROM_NAME', '')

    @property
    def reply_to(self):
        return os.getenv('SENDER_REPLY_TO', '')

    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ==========================================
    # HTTP
    # ==========================================

    def _request(self, method: str, path: str, params: Dict = None, json: Dict = None) -> Dict:
        if not self.api_key:
            raise SenderError('Sender.net API key is not configured', status_code=500)

        response = requests.request(
            method,
            f'{API_BASE}{path}',
            params=params,
            json=json,
            headers={
                'Authorization': f'Bearer {self.api_key}',
                'Content-Type': 'application/json',
                'Accept': 'application/json'
            },
            timeout=30
        )

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if not response.ok:
            detail = ''
            if isinstance(data, dict):
                detail = data.get('message') or data.get('error') or ''
            logger.error(f"Sender.net API error {response.status_code} on {method} {path}: {str(data)[:300]}")
            raise SenderError(f"Sender.net API error ({response.status_code}): {detail or response.text[:200]}",
                              status_code=response.status_code)
        return data if isinstance(data, dict) else {'data': data}

    def _paginate(self, path: str, params: Dict = None) -> List[Dict]:
        """Walk every page of a list endpoint"""
        items = []
        page = 1
        while True:
            data = self._request('GET', path, params={**(params or {}), 'page': page})
            chunk = data.get('data')
            if isinstance(chunk, list):
                items.extend(chunk)
            elif isinstance(chunk, dict) and chunk.get('id'):
                items.append(chunk)

            meta = data.get('meta') or {}
            links = data.get('links') or {}
            if meta.get('last_page'):
                has_more = page < int(meta['last_page'])
            else:
                has_more = bool(links.get('next'))
            if not has_more:
                return items
            page += 1
            time.sleep(self.page_delay)

    @staticmethod
    def _unwrap(data: Dict) -> Dict:
        item = data.get('data', data)
        if isinstance(item, list):
            return item[0] if item else {}
        return item

    # ==========================================
    # CAMPAIGNS
    # ==========================================

    def create_campaign(self, subject: str, content: str, title: Optional[str] = None,
                        from_name: Optional[str] = None, reply_to: Optional[str] = None,
                        preheader: Optional[str] = None, content_type: str = 'html',
                        google_analytics: bool = False, auto_followup_active: bool = False,
                        auto_followup_subject: Optional[str] = None, auto_followup_delay: Optional[int] = None,
                        groups: Optional[List[str]] = None, segments: Optional[List[str]] = None) -> Dict:
        if content_type == 'html':
            content = ensure_unsubscribe_link(content)

        payload = {
            'title': title or subject,
            'subject': subject,
            'from': from_name or self.from_name,
            'reply_to': reply_to or self.reply_to,
            'preheader': preheader,
            'content_type': content_type,
            'content': content,
            'google_analytics': 1 if google_analytics else 0,
            'auto_followup_active': 1 if auto_followup_active else 0,
            'auto_followup_subject': auto_followup_subject,
            'auto_followup_delay': auto_followup_delay,
            'groups': groups or ([self.list_id] if self.list_id else []),
            'segments': segments or []
        }
        campaign = self._unwrap(self._request('POST', '/campaigns', json=payload))
        logger.info(f"Created Sender.net campaign {campaign.get('id')}")
        return campaign

    def get_campaigns(self, page: int = 1, limit: int = 100, status: Optional[str] = None) -> Dict:
        params = {'page': page, 'limit': limit}
        if status:
            params['status'] = status
        return self._request('GET', '/campaigns', params=params)

    def get_all_campaigns(self, limit: int = 100, status: Optional[str] = None) -> List[Dict]:
        params = {'limit': limit}
        if status:
            params['status'] = status
        return self._paginate('/campaigns', params)

    def get_campaign(self, campaign_id: str) -> Dict:
        return self._unwrap(self._request('GET', f'/campaigns/{campaign_id}'))

    def send_campaign(self, campaign_id: str) -> Dict:
        return self._request('POST', f'/campaigns/{campaign_id}/send')

    def schedule_campaign(self, campaign_id: str, when: datetime) -> Dict:
        return self._request('POST', f'/campaigns/{campaign_id}/schedule', json={
            'schedule_time': when.strftime('%Y-%m-%d %H:%M:%S')
        })

    def cancel_scheduled_campaign(self, campaign_id: str) -> Dict:
        return self._request('DELETE', f'/campaigns/{campaign_id}/schedule')

    def delete_campaigns(self, campaign_ids: List[str]) -> Dict:
        # API expects the literal bracketed list: ?ids=[a,b]
        return self._request('DELETE', '/campaigns', params={'ids': f"[{','.join(campaign_ids)}]"})

    # ==========================================
    # GROUPS
    # ==========================================

    def get_groups(self, page: int = 1) -> Dict:
        return self._request('GET', '/groups', params={'page': page})

    def get_all_groups(self) -> List[Dict]:
        return self._paginate('/groups')

    def create_group(self, title: str) -> Dict:
        group = self._unwrap(self._request('POST', '/groups', json={'title': title}))
        if not group.get('id'):
            raise SenderError('Failed to create group: Invalid response from Sender.net')
        return group

    def update_group(self, group_id: str, title: str) -> Dict:
        return self._request('PATCH', f'/groups/{group_id}', json={'title': title})

    def delete_group(self, group_id: str, delete_subscribers: bool = False) -> Dict:
        params = {'delete_subscribers': 'true'} if delete_subscribers else None
        return self._request('DELETE', f'/groups/{group_id}', params=params)

    # ==========================================
    # SUBSCRIBERS
    # ==========================================

    def create_subscriber(self, email: str, groups: Optional[List[str]] = None) -> Dict:
        groups = groups or ([self.list_id] if self.list_id else [])
        return self._request('POST', '/subscribers', json={'email': email, 'groups': groups})

    def get_subscriber(self, email: str) -> Dict:
        return self._unwrap(self._request('GET', f'/subscribers/{email}'))

    def update_subscriber(self, email: str, fields: Dict) -> Dict:
        return self._request('PATCH', f'/subscribers/{email}', json=fields)

    def get_all_subscribers(self) -> List[Dict]:
        return self._paginate('/subscribers', {'per_page': 100})

    def add_subscribers_to_group(self, group_id: str, emails: List[str], trigger_automation: bool = False) -> Dict:
        return self._request('POST', f'/subscribers/groups/{group_id}', json={
            'subscribers': emails,
            'trigger_automation': trigger_automation
        })

    def remove_subscribers_from_group(self, group_id: str, emails: List[str]) -> Dict:
        return self._request('DELETE', f'/subscribers/groups/{group_id}', json={'subscribers': emails})

    # ==========================================
    # SYNC
    # ==========================================

    def push_subscriber(self, subscriber) -> bool:
        """Best-effort push of one local subscriber; marks it synced on success"""
        from app.database import db

        if not self.is_configured():
            return False
        try:
            self.create_subscriber(subscriber.email)
        except (SenderError, requests.RequestException) as e:
            logger.warning(f"Could not push {subscriber.email} to Sender.net: {e}")
            return False
        subscriber.synced_to_sender = True
        db.session.commit()
        return True

    def sync_subscribers(self) -> Dict:
        """
        Two-way subscriber sync.

        1. Push local subscribers that never reached Sender.net.
        2. Only when nothing needed pushing, pull every remote subscriber and
           update or create the local rows.
        """
        from app.database import db
        from app.models.db_models import DBSubscriber

        errors = []
        pushed = {'synced': 0, 'failed': 0}
        pulled = {'updated': 0, 'created': 0, 'errors': 0}

        unsynced = DBSubscriber.query.filter_by(synced_to_sender=False).all()
        for subscriber in unsynced:
            try:
                self.create_subscriber(subscriber.email)
                subscriber.synced_to_sender = True
                db.session.commit()
                pushed['synced'] += 1
            except (SenderError, requests.RequestException) as e:
                pushed['failed'] += 1
                errors.append(f"Failed to sync {subscriber.email} to Sender.net: {e}")

        if not unsynced:
            try:
                remote = self.get_all_subscribers()
            except (SenderError, requests.RequestException) as e:
                errors.append(f"Error in pull sync: {e}")
                remote = []

            local = {s.email: s for s in DBSubscriber.query.all()}
            for item in remote:
                email = (item.get('email') or '').strip().lower()
                if not email:
                    continue
                status = map_sender_status((item.get('status') or {}).get('email'))
                try:
                    existing = local.get(email)
                    if existing:
                        if existing.status != status or not existing.synced_to_sender:
                            existing.status = status
                            existing.synced_to_sender = True
                            pulled['updated'] += 1
                    else:
                        created = DBSubscriber(email=email, status=status, synced_to_sender=True)
                        db.session.add(created)
                        local[email] = created
                        pulled['created'] += 1
                    db.session.commit()
                except Exception as e:
                    db.session.rollback()
                    pulled['errors'] += 1
                    errors.append(f"Error processing {email}: {e}")

        logger.info(f"Subscriber sync: pushed {pushed}, pulled {pulled}")
        # Partial progress still counts as a successful run
        success = not errors or bool(pushed['synced'] or pulled['updated'] or pulled['created'])
        return {
            'success': success,
            'pushed': pushed,
            'pulled': pulled,
            'errors': errors[:20]
        }


def _as_list(value) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)] if value else []


def campaign_fields_from_remote(remote: Dict, current_content: str = '') -> Dict:
    """
    Map a Sender.net campaign payload onto DBCampaign attributes.

    HTML comes from html.html_content, then html.html_body; when Sender.net
    has neither, the local content is kept.
    """
    from app.utils import parse_datetime

    html = remote.get('html') or {}
    content = current_content
    if isinstance(html, dict):
        if (html.get('html_content') or '').strip():
            content = html['html_content']
        elif (html.get('html_body') or '').strip():
            content = html['html_body']

    return {
        'title': remote.get('title'),
        'subject': remote.get('subject') or '(No Subject)',
        'from_name': remote.get('from'),
        'preheader': remote.get('preheader'),
        'reply_to': remote.get('reply_to'),
        'content_type': remote.get('editor') or 'html',
        'content': content,
        'auto_followup_active': remote.get('auto_followup_active') == 1,
        'auto_followup_subject': remote.get('auto_followup_subject'),
        'auto_followup_delay': remote.get('auto_followup_delay'),
        'groups': _as_list(remote.get('campaign_groups')),
        'segments': _as_list(remote.get('segments')),
        'status': remote.get('status') or 'DRAFT',
        'schedule_time': parse_datetime(remote.get('schedule_time')),
        'sent_time': parse_datetime(remote.get('sent_time')),
        'recipient_count': int(remote.get('recipient_count') or 0),
        'sent_count': int(remote.get('sent_count') or 0),
        'opens': int(remote.get('opens') or 0),
        'clicks': int(remote.get('clicks') or 0),
        'bounces_count': int(remote.get('bounces_count') or 0),
        'synced_at': datetime.utcnow()
    }


def sync_message(result: Dict) -> str:
    """Human summary of a sync_subscribers() result"""
    pushed = result['pushed']['synced']
    updated = result['pulled']['updated']
    created = result['pulled']['created']
    if not (pushed or updated or created):
        return 'All subscribers are already in sync'
    return (f"Sync complete: pushed {pushed} to Sender.net, updated {updated} from Sender.net, "
            f"created {created} new from Sender.net")


# Singleton instance
_sender_service = None


def get_sender_service() -> SenderService:
    """Get or create Sender.net service instance"""
    global _sender_service
    if _sender_service is None:
        _sender_service = SenderService()
    return _sender_service
