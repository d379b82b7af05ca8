"""
Brand Studio - Gmail Service
Reads the owner's inbox over the Gmail REST API and mirrors it into the database
"""
import base64
import os
import re
import logging
import requests
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional

from app.database import db
from app.models.db_models import DBEmail, DBEmailCronJob, DBEmailTask, DBGoogleConnection
from app.services.ai_service import (
    AIServiceError, analyze_email_and_generate_tasks, get_integration, load_thread
)
from app.services.oauth_service import get_oauth_service, OAuthError

logger = logging.getLogger(__name__)

GMAIL_API = 'https://gmail.googleapis.com/gmail/v1/users/me'
TOKEN_REFRESH_WINDOW = timedelta(minutes=5)


class GmailError(Exception):
    """Gmail API or connection error"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ==========================================
# MESSAGE PARSING
# ==========================================

def _decode_body(data: str) -> str:
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode('utf-8', errors='replace')


def _parse_date(date_header: str, internal_date: Optional[str]) -> datetime:
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except (TypeError, ValueError):
            pass
    if internal_date:
        return datetime.utcfromtimestamp(int(internal_date) / 1000)
    return datetime.utcnow()


def parse_gmail_message(message: Dict) -> Dict:
    """Flatten a format=full Gmail message into the fields stored on DBEmail"""
    payload = message.get('payload') or {}
    headers = {h.get('name', '').lower(): h.get('value', '') for h in payload.get('headers', [])}

    html = ''
    text = ''

    def walk(part):
        nonlocal html, text
        data = (part.get('body') or {}).get('data')
        if data:
            mime = part.get('mimeType')
            if mime == 'text/html':
                html = _decode_body(data)
            elif mime == 'text/plain':
                text = _decode_body(data)
        for child in part.get('parts') or []:
            walk(child)

    walk(payload)

    return {
        'gmail_id': message['id'],
        'thread_id': message.get('threadId'),
        'subject': headers.get('subject') or '(No Subject)',
        'from_address': headers.get('from', ''),
        'to_address': headers.get('to', ''),
        'snippet': message.get('snippet'),
        'body': html or None,
        'body_text': text or None,
        'received_at': _parse_date(headers.get('date', ''), message.get('internalDate')),
        'is_read': 'UNREAD' not in (message.get('labelIds') or [])
    }


# ==========================================
# API CLIENT
# ==========================================

class GmailService:
    """Gmail REST client bound to an access token"""

    def __init__(self, access_token: str):
        self.access_token = access_token

    def _get(self, path: str, params: Dict = None) -> Dict:
        response = requests.get(f'{GMAIL_API}{path}', params=params, headers={
            'Authorization': f'Bearer {self.access_token}'
        }, timeout=30)
        if not response.ok:
            logger.error(f"Gmail API error {response.status_code} on {path}: {response.text[:200]}")
            raise GmailError(f"Gmail API error ({response.status_code}): {response.text[:200]}",
                             status_code=response.status_code)
        return response.json()

    def list_messages(self, query: Optional[str] = None, max_results: int = 100) -> List[Dict]:
        params = {'maxResults': max_results}
        if query:
            params['q'] = query
        return self._get('/messages', params).get('messages', [])

    def get_message(self, message_id: str, fmt: str = 'full') -> Dict:
        return self._get(f'/messages/{message_id}', {'format': fmt})

    def get_thread(self, thread_id: str) -> Dict:
        return self._get(f'/threads/{thread_id}')

    def _fetch_full(self, refs: List[Dict]) -> List[Dict]:
        messages = []
        for ref in refs:
            try:
                message = self.get_message(ref['id'])
            except GmailError as e:
                logger.warning(f"Skipping message {ref['id']}: {e}")
                continue
            # threadId from the list response is authoritative
            if ref.get('threadId') and not message.get('threadId'):
                message['threadId'] = ref['threadId']
            messages.append(message)
        return messages

    def get_unread_emails(self, max_results: int = 50) -> List[Dict]:
        return self._fetch_full(self.list_messages('is:unread', max_results))

    def get_all_emails(self, max_results: int = 100) -> List[Dict]:
        return self._fetch_full(self.list_messages(None, max_results))


# ==========================================
# CONNECTION
# ==========================================

def get_active_connection() -> Optional[DBGoogleConnection]:
    return DBGoogleConnection.query.filter_by(is_active=True).order_by(
        DBGoogleConnection.connected_at.desc()).first()


def get_valid_access_token() -> str:
    """Access token for the active Google connection, refreshed when close to expiry"""
    connection = get_active_connection()
    if connection is None:
        raise GmailError('Google account not connected', status_code=400)

    expiring = connection.expires_at is None or connection.expires_at <= datetime.utcnow() + TOKEN_REFRESH_WINDOW
    if not expiring:
        return connection.access_token

    if not connection.refresh_token:
        raise GmailError('Token expired and no refresh token available', status_code=400)

    try:
        refreshed = get_oauth_service().refresh_token('google', connection.refresh_token)
    except OAuthError as e:
        raise GmailError(str(e), status_code=400)

    connection.access_token = refreshed['access_token']
    connection.refresh_token = refreshed.get('refresh_token') or connection.refresh_token
    connection.expires_at = datetime.utcnow() + timedelta(seconds=int(refreshed.get('expires_in', 3600)))
    db.session.commit()
    logger.info("Refreshed Google access token")
    return connection.access_token


# ==========================================
# SYNC
# ==========================================

def sync_emails(max_results: int = 100) -> Dict:
    """
    Mirror the latest messages and flag threads that need attention.

    A thread that received new or unread mail is marked unread and
    un-analyzed so it is picked up by the next analysis pass.

    Returns synced (existing rows refreshed), new (rows inserted) and
    total (messages fetched from Gmail).
    """
    client = GmailService(get_valid_access_token())
    messages = client.get_all_emails(max_results)
    now = datetime.utcnow()

    new_count = 0
    updated_count = 0
    touched_threads = {}
    for message in messages:
        fields = parse_gmail_message(message)
        existing = DBEmail.query.filter_by(gmail_id=fields['gmail_id']).first()

        if existing is None:
            email = DBEmail(**fields)
            email.last_synced_at = now
            db.session.add(email)
            new_count += 1
            is_new = True
        else:
            is_new = False
            if existing.is_analyzed and existing.thread_id:
                newer = DBEmail.query.filter(
                    DBEmail.thread_id == existing.thread_id,
                    DBEmail.received_at > (existing.last_synced_at or existing.synced_at)
                ).count()
                if newer:
                    existing.is_analyzed = False
            for key in ('thread_id', 'subject', 'from_address', 'to_address', 'snippet', 'body', 'body_text', 'is_read'):
                value = fields[key]
                if value is not None or key == 'is_read':
                    setattr(existing, key, value)
            existing.last_synced_at = now
            updated_count += 1

        thread_id = fields['thread_id']
        if thread_id:
            state = touched_threads.setdefault(thread_id, {'new': False, 'unread': False})
            state['new'] = state['new'] or is_new
            state['unread'] = state['unread'] or not fields['is_read']

    db.session.flush()

    for thread_id, state in touched_threads.items():
        if not (state['new'] or state['unread']):
            continue
        for email in DBEmail.query.filter_by(thread_id=thread_id).all():
            email.is_read = False
            email.is_analyzed = False

    db.session.commit()
    logger.info(f"Gmail sync: {len(messages)} fetched, {updated_count} updated, {new_count} new")
    return {'success': True, 'synced': updated_count, 'new': new_count, 'total': len(messages)}


def cleanup_emails(max_results: int = 500) -> Dict:
    """Drop local emails that no longer exist in Gmail and backfill thread ids"""
    client = GmailService(get_valid_access_token())
    refs = client.list_messages(None, max_results)
    remote_threads = {ref['id']: ref.get('threadId') for ref in refs}

    total_local = DBEmail.query.count()
    removed = 0
    fixed = 0
    for email in DBEmail.query.all():
        if email.gmail_id not in remote_threads:
            db.session.delete(email)
            removed += 1
        elif not email.thread_id and remote_threads[email.gmail_id]:
            email.thread_id = remote_threads[email.gmail_id]
            fixed += 1
    db.session.commit()

    still_missing = DBEmail.query.filter(DBEmail.thread_id.is_(None)).count()
    logger.info(f"Gmail cleanup: removed {removed}, fixed {fixed} thread ids")
    return {
        'success': True,
        'summary': {
            'totalInGmail': len(refs),
            'totalInDatabase': total_local,
            'removed': removed,
            'fixedThreadIds': fixed,
            'stillMissingThreadId': still_missing
        }
    }


# ==========================================
# ANALYSIS
# ==========================================

def analyze_thread(integration_id: str, email: DBEmail) -> List[DBEmailTask]:
    """Analyze the email's whole thread; tasks attach to the latest message"""
    emails = load_thread(email_id=email.id)
    tasks = analyze_email_and_generate_tasks(integration_id, email_id=email.id)
    latest = emails[-1]

    created = []
    for task in tasks:
        record = DBEmailTask(
            email_id=latest.id,
            title=task['title'],
            description=task.get('description'),
            priority=task['priority'],
            ai_analysis=task
        )
        db.session.add(record)
        created.append(record)

    for item in emails:
        item.is_analyzed = True
    db.session.commit()
    return created


def analyze_unread_emails(integration_id: str) -> Dict:
    """Analyze every unread, unanalyzed, relevant thread once"""
    get_integration(integration_id)

    pending = DBEmail.query.filter_by(is_read=False, is_analyzed=False, is_irrelevant=False).order_by(
        DBEmail.received_at.desc()).all()
    threads = {}
    for email in pending:
        threads.setdefault(email.thread_key, []).append(email)

    threads_analyzed = 0
    emails_analyzed = 0
    tasks_created = 0
    errors = []
    for key, group in threads.items():
        try:
            tasks = analyze_thread(integration_id, group[0])
        except (AIServiceError, requests.RequestException) as e:
            db.session.rollback()
            logger.error(f"Analysis failed for thread {key}: {e}")
            errors.append(f"Thread {key}: {e}")
            continue
        threads_analyzed += 1
        emails_analyzed += len(group)
        tasks_created += len(tasks)

    logger.info(f"Email analysis: {threads_analyzed} threads, {tasks_created} tasks, {len(errors)} errors")
    result = {
        'success': True,
        'threadsAnalyzed': threads_analyzed,
        'emailsAnalyzed': emails_analyzed,
        'tasksCreated': tasks_created
    }
    if errors:
        result['errors'] = errors
    return result


def get_cron_config() -> DBEmailCronJob:
    """The email job settings row, created with defaults on first use"""
    config = DBEmailCronJob.query.first()
    if config is None:
        config = DBEmailCronJob()
        db.session.add(config)
        db.session.commit()
    return config


# ==========================================
# EXTERNAL TASK BOARD
# ==========================================

EXTERNAL_PRIORITIES = {'low': 'LOW', 'medium': 'MEDIUM', 'high': 'HIGH'}
_ADDRESS_RE = re.compile(r'<(.+)>')
_NAME_RE = re.compile(r'^(.+?)\s*<')


def build_external_task(task: DBEmailTask, board_id: Optional[str] = None) -> Dict:
    """Payload for the external task board, with the source email as context"""
    description = task.description or ''
    email = task.email
    if email is not None:
        if email.snippet:
            description += f"\n\nEmail Preview: {email.snippet}"
        received = email.received_at.strftime('%Y-%m-%d %H:%M') if email.received_at else ''
        description += (f"\n\n--- Email Context ---\nSubject: {email.subject}\n"
                        f"From: {email.from_address}\nReceived: {received}")

    payload = {
        'title': task.title,
        'description': description.strip(),
        'priority': EXTERNAL_PRIORITIES.get(task.priority, 'MEDIUM'),
        'tags': ['email', 'auto-generated']
    }

    if email is not None and email.from_address:
        address = _ADDRESS_RE.search(email.from_address)
        payload['contactEmail'] = address.group(1) if address else email.from_address
        name = _NAME_RE.match(email.from_address)
        if name:
            payload['contactName'] = name.group(1).strip().strip('"')

    if board_id:
        payload['boardId'] = board_id
    return payload


def create_external_task(task: DBEmailTask) -> Optional[str]:
    """Push a task to the external board; returns and stores the remote id"""
    base_url = os.getenv('PUBLIC_API_BASE_URL', '').rstrip('/')
    api_key = os.getenv('PUBLIC_API_KEY', '')
    if not base_url or not api_key:
        raise GmailError('External API configuration is missing. Please configure '
                         'PUBLIC_API_BASE_URL and PUBLIC_API_KEY.', status_code=500)

    response = requests.post(
        f"{base_url}/api/v1/tasks/public",
        json=build_external_task(task, os.getenv('PUBLIC_API_BOARD_ID')),
        headers={'X-API-Key': api_key, 'Content-Type': 'application/json'},
        timeout=30
    )
    if not response.ok:
        logger.error(f"External task API error {response.status_code}: {response.text[:300]}")
        raise GmailError(f"Failed to create task on external platform: {response.text[:200]}",
                         status_code=response.status_code)

    result = response.json() if response.content else {}
    external_id = result.get('taskId') or result.get('id') or result.get('externalTaskId')
    if external_id:
        task.external_task_id = str(external_id)
        db.session.commit()
    logger.info(f"Task {task.id} created on external board as {external_id}")
    return task.external_task_id
