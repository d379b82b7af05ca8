"""
Brand Studio - AI Service
Post generation, refinement, idea generation and email task extraction
across OpenAI, Anthropic and Google Gemini integrations
"""
import re
import json
import logging
import requests
from datetime import datetime
from typing import Dict, List, Optional

import anthropic
import openai
from openai import OpenAI

from app.database import db
from app.models.db_models import DBAiIntegration, DBEmail, TaskPriority
from app.services.social_service import get_character_limit
from app.utils import strip_html

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    'openai': 'gpt-4',
    'google': 'gemini-pro',
    'anthropic': 'claude-3-opus-20240229',
}
GEMINI_API = 'https://generativelanguage.googleapis.com/v1beta/models'
TEMPERATURE = 0.7
MAX_TOKENS = 1000

FORMATTING_RULES = (
    "IMPORTANT FORMATTING REQUIREMENTS:\n"
    "- Use proper paragraph breaks (double line breaks) to separate different ideas or sections\n"
    "- Keep paragraphs concise (2-4 sentences each)\n"
    "- Format hashtags on a separate line at the end if applicable"
)

NUMBERED_ITEM = re.compile(r'^\d+[.)\-]\s+', re.MULTILINE)
HASHTAG_RUN = re.compile(r'\s+(#\S+(?:\s+#\S+)*)')
POST_SEPARATOR = '---POST---'

REFINE_PREFIXES = [
    re.compile(p, re.IGNORECASE) for p in (
        r"^Here is the refined post:\s*",
        r"^Here's the refined post:\s*",
        r"^Here's the refined version:\s*",
        r"^Here is the refined content:\s*",
        r"^Here's the refined content:\s*",
        r"^Refined version:\s*",
        r"^Refined post:\s*",
        r"^Refined content:\s*",
        r"^Refined:\s*",
        r"^Here is the post:\s*",
        r"^Here's the post:\s*",
        r"^Post:\s*",
        r"^Content:\s*",
    )
]


class AIServiceError(Exception):
    """AI provider or integration error"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ==========================================
# TEXT CLEANUP
# ==========================================

def remove_indentation(content: str) -> str:
    """Strip the common leading indentation from non-blank lines"""
    if not content:
        return content
    lines = content.split('\n')
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    if not indents or min(indents) == 0:
        return content
    cut = min(indents)
    return '\n'.join(line[cut:] if line.strip() else line for line in lines)


def format_post_with_paragraphs(content: str) -> str:
    """
    Normalize a generated post into short paragraphs.

    Existing blank-line paragraphs are kept. Otherwise sentences are grouped
    into paragraphs of roughly 200 characters. Hashtags always end up on their
    own trailing line.
    """
    if not content:
        return content

    content = remove_indentation(content)
    content = content.replace('\r\n', '\n').replace('\r', '\n').strip()
    content = '\n'.join(line.rstrip() for line in content.split('\n'))

    if '\n\n' in content:
        content = re.sub(r'\n{3,}', '\n\n', content)
        content = HASHTAG_RUN.sub(r'\n\n\1', content)
        return content.strip()

    formatted = re.sub(r'([^\n])\s+(#\S+(?:\s+#\S+)*)', r'\1\n\n\2', content)
    formatted = re.sub(r'([.!?])\s+([A-Z][^.!?]{150,})', r'\1\n\n\2', formatted)

    if '\n\n' not in formatted and len(formatted) > 200:
        pieces = re.split(r'([.!?]\s+)', formatted)
        paragraphs = []
        current = []
        chars = 0
        for i in range(0, len(pieces), 2):
            sentence = pieces[i] + (pieces[i + 1] if i + 1 < len(pieces) else '')
            if not sentence.strip():
                continue
            current.append(sentence.strip())
            chars += len(sentence)
            if chars > 200 and len(current) >= 2:
                paragraphs.append(' '.join(current))
                current = []
                chars = 0
        if current:
            paragraphs.append(' '.join(current))
        if len(paragraphs) > 1:
            formatted = '\n\n'.join(paragraphs)

    formatted = HASHTAG_RUN.sub(r'\n\n\1', formatted)
    formatted = re.sub(r'\n{3,}', '\n\n', formatted)
    return formatted.strip()


def clean_refined_content(content: str) -> str:
    """Drop chatty prefixes, code fences and wrapping quotes from a refined post"""
    if not content:
        return content
    cleaned = content.strip()
    for prefix in REFINE_PREFIXES:
        cleaned = prefix.sub('', cleaned)
    cleaned = re.sub(r'^```\w*\n?', '', cleaned)
    cleaned = re.sub(r'\n?```$', '', cleaned)
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in ('"', "'"):
        cleaned = cleaned[1:-1]
    return format_post_with_paragraphs(cleaned).strip()


def _strip_item(item: str, strip_bold: bool = False) -> str:
    item = NUMBERED_ITEM.sub('', item, count=1).strip()
    if strip_bold:
        item = item.replace('**', '').strip()
    item = re.sub(r'^\*\s*', '', item, flags=re.MULTILINE).strip()
    item = re.sub(r'^-\s*', '', item, flags=re.MULTILINE).strip()
    return re.sub(r'^["\']|["\']$', '', item).strip()


def split_numbered_list(response: str) -> List[str]:
    """Split a model response into items by numbering, or by blank lines when unnumbered"""
    if NUMBERED_ITEM.search(response):
        parts = re.split(r'(?=^\d+[.)\-]\s+)', response, flags=re.MULTILINE)
    else:
        parts = re.split(r'\n\n+', response)
    return [p for p in parts if p.strip()]


def _is_post_preamble(text: str) -> bool:
    lower = text.lower()
    return ('here are' in lower or "here's" in lower or lower.startswith('generate')
            or 'platform:' in lower or len(text) < 10)


def _is_idea_preamble(text: str) -> bool:
    lower = text.lower()
    markers = ('generate post ideas', 'generate ideas', 'here are', "here's", 'business post idea', 'prompt:')
    return (any(m in lower for m in markers) or lower.startswith(('generate posts', 'sure'))
            or text.rstrip().endswith(':') or len(text) < 10)


def parse_posts(response: str, count: int) -> List[str]:
    if POST_SEPARATOR in response:
        parts = [p for p in response.split(POST_SEPARATOR) if p.strip()]
    else:
        parts = split_numbered_list(response)

    posts = []
    for part in parts:
        post = _strip_item(part)
        if _is_post_preamble(post):
            continue
        post = format_post_with_paragraphs(post)
        if len(post) >= 10:
            posts.append(post)
    return posts[:count]


def parse_ideas(response: str, count: int) -> List[str]:
    ideas = []
    for part in split_numbered_list(response):
        idea = _strip_item(part, strip_bold=True)
        if _is_idea_preamble(idea):
            continue
        idea = re.sub(r'[ \t]+', ' ', idea)
        idea = re.sub(r'\n{3,}', '\n\n', idea).strip()
        if len(idea) >= 10:
            ideas.append(idea)
    return ideas[:count]


def parse_tasks(response: str) -> List[Dict]:
    """Parse the JSON task array returned by email analysis"""
    cleaned = response.strip()
    cleaned = re.sub(r'^```(?:json)?\n?', '', cleaned)
    cleaned = re.sub(r'\n?```$', '', cleaned)
    try:
        tasks = json.loads(cleaned)
    except ValueError as e:
        raise AIServiceError(f'Failed to parse AI response: {e}')
    if not isinstance(tasks, list):
        raise AIServiceError('Failed to parse AI response: Response is not an array')

    result = []
    for task in tasks:
        if not isinstance(task, dict) or not task.get('title') or not task.get('priority'):
            continue
        priority = str(task['priority']).lower()
        result.append({
            'title': str(task['title']).strip(),
            'description': str(task['description']).strip() if task.get('description') else None,
            'priority': priority if priority in TaskPriority.ALL else TaskPriority.MEDIUM
        })
    return result


# ==========================================
# PROVIDERS
# ==========================================

def _call_openai(api_key: str, model: str, system_prompt: str, user_prompt: str) -> str:
    client = OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ],
        temperature=TEMPERATURE,
        max_tokens=MAX_TOKENS
    )
    return response.choices[0].message.content or ''


def _call_anthropic(api_key: str, model: str, system_prompt: str, user_prompt: str) -> str:
    client = anthropic.Anthropic(api_key=api_key)
    response = client.messages.create(
        model=model,
        max_tokens=MAX_TOKENS,
        system=system_prompt,
        messages=[
            {"role": "user", "content": user_prompt}
        ]
    )
    return response.content[0].text if response.content else ''


def normalize_gemini_model(model: Optional[str]) -> str:
    name = (model or '').strip()
    if name.startswith('models/'):
        name = name[len('models/'):]
    if 'gemini' not in name:
        return DEFAULT_MODELS['google']
    return name


def _call_google(api_key: str, model: str, system_prompt: str, user_prompt: str, is_retry: bool = False) -> str:
    model = normalize_gemini_model(model)
    response = requests.post(
        f'{GEMINI_API}/{model}:generateContent',
        params={'key': api_key.strip()},
        json={
            'contents': [{'parts': [{'text': f'{system_prompt}\n\n{user_prompt}'}]}],
            'generationConfig': {'temperature': TEMPERATURE, 'maxOutputTokens': MAX_TOKENS}
        },
        timeout=60
    )

    if not response.ok:
        if response.status_code == 404 and not is_retry and model != DEFAULT_MODELS['google']:
            logger.warning(f"Gemini model {model} not found, retrying with {DEFAULT_MODELS['google']}")
            return _call_google(api_key, DEFAULT_MODELS['google'], system_prompt, user_prompt, is_retry=True)
        if response.status_code in (401, 403):
            raise AIServiceError('Invalid or missing Google Gemini API key. '
                                 'Please check your API key in the AI Integrations settings.', status_code=400)
        try:
            detail = (response.json().get('error') or {}).get('message') or response.text[:200]
        except ValueError:
            detail = response.text[:200]
        raise AIServiceError(f'Google Gemini API error: {detail}', status_code=502)

    candidates = response.json().get('candidates') or []
    if not candidates:
        raise AIServiceError('No candidates returned from Gemini API', status_code=502)
    finish = candidates[0].get('finishReason')
    if finish in ('SAFETY', 'RECITATION'):
        raise AIServiceError(f'Content was blocked by safety filters. Finish reason: {finish}', status_code=502)
    parts = (candidates[0].get('content') or {}).get('parts') or []
    text = parts[0].get('text') if parts else None
    if not text:
        raise AIServiceError('No text content in Gemini API response', status_code=502)
    return text


PROVIDERS = {
    'openai': _call_openai,
    'anthropic': _call_anthropic,
    'google': _call_google,
}


def get_integration(integration_id: str) -> DBAiIntegration:
    """Active integration with an API key, or AIServiceError"""
    integration = db.session.get(DBAiIntegration, integration_id) if integration_id else None
    if integration is None or not integration.is_active:
        raise AIServiceError('AI integration not found or inactive', status_code=404)
    if not (integration.api_key or '').strip():
        raise AIServiceError('API key is missing for this AI integration. '
                             'Please update the integration with a valid API key.', status_code=400)
    return integration


def complete(integration: DBAiIntegration, system_prompt: str, user_prompt: str) -> str:
    provider = PROVIDERS.get(integration.provider)
    if provider is None:
        raise AIServiceError(f'Unsupported AI provider: {integration.provider}', status_code=400)
    model = integration.model or DEFAULT_MODELS[integration.provider]
    try:
        return provider(integration.api_key, model, system_prompt, user_prompt)
    except AIServiceError:
        raise
    except (requests.RequestException, anthropic.APIError, openai.OpenAIError) as e:
        logger.error(f"AI provider {integration.provider} failed: {e}")
        raise AIServiceError(f'{integration.provider} API error: {e}', status_code=502)


# ==========================================
# GENERATION
# ==========================================

def _blog_context(blog_title: Optional[str], blog_excerpt: Optional[str], blog_content: Optional[str]) -> str:
    context = ''
    if blog_title:
        context += f'Title: {blog_title}\n\n'
    if blog_excerpt:
        context += f'Excerpt: {blog_excerpt}\n\n'
    if blog_content:
        context += f'Content: {strip_html(blog_content)[:3000]}\n\n'
    return context


def generate_post(integration_id: str, prompt: str, platform: str, blog_title: str = None,
                  blog_excerpt: str = None, blog_content: str = None) -> str:
    integration = get_integration(integration_id)
    limit = get_character_limit(platform)
    if blog_title or blog_content:
        system_prompt = 'You are a social media content creator. Generate engaging social media posts based on blog content.'
        user_prompt = (f'Create a {platform} post based on the following blog:\n\n'
                       f'{_blog_context(blog_title, blog_excerpt, blog_content)}'
                       f'User Instructions: {prompt}\n\nPlatform: {platform}\n\n'
                       f'Generate a compelling {platform} post that follows the user\'s instructions. '
                       f'Make it engaging, authentic, and appropriate for the platform. '
                       f'Keep it under {limit} characters.\n\n{FORMATTING_RULES}')
    else:
        system_prompt = 'You are a social media content creator. Generate engaging social media posts.'
        user_prompt = (f'{prompt}\n\nPlatform: {platform}\n\n'
                       f'Generate a compelling {platform} post under {limit} characters.\n\n{FORMATTING_RULES}')
    return format_post_with_paragraphs(complete(integration, system_prompt, user_prompt))


def generate_multiple_posts(integration_id: str, prompt: str, platform: str, count: int = 1,
                            blog_title: str = None, blog_excerpt: str = None, blog_content: str = None) -> List[str]:
    """
    Generate `count` distinct posts in one call.

    Falls back to one call per missing post when the combined response
    yields fewer usable posts than asked for.
    """
    if count <= 1:
        return [generate_post(integration_id, prompt, platform, blog_title, blog_excerpt, blog_content)]

    integration = get_integration(integration_id)
    if blog_title or blog_content:
        system_prompt = ('You are a social media content creator. Generate multiple engaging social media posts '
                         'based on blog content. Each post should be unique and cover different aspects or angles '
                         'of the blog content.')
        user_prompt = (f'Create {count} distinct {platform} posts based on the following blog:\n\n'
                       f'{_blog_context(blog_title, blog_excerpt, blog_content)}'
                       f'User Instructions: {prompt}\n\nPlatform: {platform}\n\n')
    else:
        system_prompt = 'You are a social media content creator. Generate multiple engaging social media posts.'
        user_prompt = f'Generate exactly {count} distinct {platform} posts based on: {prompt}\n\n'
    user_prompt += (f'Each post must be under {get_character_limit(platform)} characters. '
                    f'Separate the posts with a line containing only {POST_SEPARATOR}. '
                    f'Do not include any additional text, just the posts.\n\n{FORMATTING_RULES}')

    posts = parse_posts(complete(integration, system_prompt, user_prompt), count)
    while len(posts) < count:
        logger.info(f"Combined generation returned {len(posts)}/{count} posts, generating one more")
        posts.append(generate_post(integration_id, prompt, platform, blog_title, blog_excerpt, blog_content))
    return posts


def refine_post(integration_id: str, content: str, refinement_prompt: str) -> str:
    integration = get_integration(integration_id)
    system_prompt = ('You are a social media content editor. Refine and improve social media posts based on '
                     'user feedback. Return ONLY the refined post content without any explanations, '
                     'introductions, or additional text.')
    user_prompt = (f'Original post:\n{content}\n\nUser refinement request: {refinement_prompt}\n\n'
                   'Refine the post according to the user\'s request while maintaining the core message.\n\n'
                   'IMPORTANT: Return ONLY the refined post content, ready to use.')
    return clean_refined_content(complete(integration, system_prompt, user_prompt))


def generate_ideas(integration_id: str, prompt: str, count: int = 5) -> List[str]:
    integration = get_integration(integration_id)
    system_prompt = ('You are a social media content strategist. Generate creative and engaging post ideas with '
                     'detailed descriptions. Return ONLY the ideas, one per line, numbered.')
    user_prompt = (f'Generate exactly {count} distinct social media post ideas based on this topic: "{prompt}"\n\n'
                   'Format requirements:\n'
                   '- Each idea has a title followed by a detailed description (2-4 sentences)\n'
                   f'- Number each idea from 1 to {count}\n'
                   '- Title and description on the same line, separated by a colon\n'
                   '- No additional text or metadata\n\n'
                   'Example format:\n'
                   '1. Title Here: Detailed description explaining the concept and how to approach the post.')
    return parse_ideas(complete(integration, system_prompt, user_prompt), count)


# ==========================================
# EMAIL ANALYSIS
# ==========================================

def load_thread(email_id: str = None, thread_id: str = None) -> List[DBEmail]:
    """Emails of a conversation, oldest first"""
    if thread_id:
        emails = DBEmail.query.filter_by(thread_id=thread_id).order_by(DBEmail.received_at.asc()).all()
        if not emails:
            raise AIServiceError('Thread not found', status_code=404)
        return emails
    if email_id:
        email = db.session.get(DBEmail, email_id)
        if email is None:
            raise AIServiceError('Email not found', status_code=404)
        if not email.thread_id:
            return [email]
        return DBEmail.query.filter_by(thread_id=email.thread_id).order_by(DBEmail.received_at.asc()).all()
    raise AIServiceError('Either emailId or threadId must be provided', status_code=400)


def analyze_email_and_generate_tasks(integration_id: str, email_id: str = None, thread_id: str = None,
                                     owner: str = 'the account owner') -> List[Dict]:
    """
    Read a whole thread and return at most one consolidated task.

    An empty list means the thread holds nothing the owner needs to act on.
    """
    integration = get_integration(integration_id)
    emails = load_thread(email_id, thread_id)

    conversation = '\n\n---\n\n'.join(
        f"[{(e.received_at or datetime.utcnow()).strftime('%Y-%m-%d %H:%M')}] From: {e.from_address or ''}\n"
        f"Subject: {e.subject or ''}\n\n{(e.body_text or strip_html(e.body or '') or e.snippet or '')[:3000]}"
        for e in emails
    )
    latest = emails[-1]

    system_prompt = (
        f'You are an email analysis assistant for {owner}. Analyze email threads and extract actionable tasks '
        f'that require {owner} to do something. Priorities: HIGH for urgent or time-sensitive items, MEDIUM for '
        'follow-ups and standard requests, LOW for optional items.\n\n'
        'Rules:\n'
        '1. If the thread is purely informational, return an EMPTY array: []\n'
        '2. Consolidate all related actions in the thread into a SINGLE task\n'
        '3. Never create tasks for things already completed\n\n'
        'Return JSON only: [{"title": "...", "description": "...", "priority": "high|medium|low"}] or []'
    )
    user_prompt = (
        f'Thread Subject: {latest.subject or ""}\nThread From: {latest.from_address or ""}\n'
        f'Number of messages in thread: {len(emails)}\n\nFull conversation:\n{conversation[:10000]}\n\n'
        'Return ONLY valid JSON, no additional text.'
    )
    return parse_tasks(complete(integration, system_prompt, user_prompt))
