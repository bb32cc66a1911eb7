#!/usr/bin/env python3

"""
Jira Utilities - Shared text helpers for Jira issue display
Converts ADF/HTML bodies to plain text, wraps paragraphs, and formats dates, durations and users
"""

import base64
import html
import os
import re
import shutil
import textwrap
import webbrowser
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple


_TIMESTAMP = re.compile(r'(\d+)-(\d+)-(\d+)T?(\d*):?(\d*):?(\d*)')


def trim(text: Optional[str]) -> str:
    return (text or '').strip()


def encode_basic_auth(email: Optional[str], token: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Build the Basic auth credential for email/token.

    Returns:
        (encoded, None) on success, (None, error_message) when a part is missing
    """
    if not email:
        return None, "API email is missing (set api.email or $JIRA_API_EMAIL)"
    if not token:
        return None, "API token is missing (set api.token, $JIRA_API_TOKEN, or $JIRA_API_KEY)"
    raw = f"{email}:{token}".encode('utf-8')
    return base64.b64encode(raw).decode('ascii'), None


def get_terminal_width() -> int:
    """Get terminal width, fallback to generous default for modern terminals."""
    try:
        return shutil.get_terminal_size().columns
    except (OSError, ValueError):
        return 120


def supports_colors() -> bool:
    """Check if terminal supports colors - be more permissive for xterm."""
    term = os.environ.get('TERM', '')
    return any(term_type in term for term_type in ['xterm', 'color', 'screen'])


def _adf_node_to_text(node: Any, indent: str = '') -> str:
    if not node:
        return ''
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ''

    node_type = node.get('type')
    if node_type == 'text':
        return node.get('text', '')
    if node_type == 'hardBreak':
        return '\n'
    if node_type == 'mention':
        return node.get('attrs', {}).get('text', '@Unknown')
    if node_type == 'inlineCard':
        return node.get('attrs', {}).get('url', '')

    children = node.get('content') or []
    joined = ''.join(_adf_node_to_text(child, indent) for child in children)

    if node_type in ('paragraph', 'heading'):
        return joined.strip() + '\n\n'
    if node_type == 'codeBlock':
        language = node.get('attrs', {}).get('language') or ''
        return f"```{language}\n{joined}\n```\n\n"
    if node_type in ('bulletList', 'orderedList'):
        lines = []
        for index, child in enumerate(children, start=1):
            marker = f"{index}. " if node_type == 'orderedList' else '- '
            lines.append(indent + marker + _adf_node_to_text(child, indent + '  ').strip())
        return '\n'.join(lines) + '\n\n'
    if node_type == 'listItem':
        return indent + joined.strip() + '\n'
    return joined


def adf_to_text(value: Any) -> str:
    """Convert an Atlassian Document Format tree (or plain string) to text."""
    if not value:
        return ''
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict) and value.get('content'):
        return ''.join(_adf_node_to_text(node) for node in value['content']).strip()
    return ''


def html_to_text(markup: Optional[str]) -> str:
    """Reduce Jira's rendered HTML to plain text paragraphs."""
    if not markup:
        return ''
    text = markup.replace('</p>', '\n\n')
    text = re.sub(r'<br\s*/?>', '\n', text)
    text = text.replace('<li>', '- ')
    text = re.sub(r'</?[^>]+>', '', text)
    return html.unescape(text).strip()


def requested_description(issue: Optional[dict]) -> str:
    """Description text, preferring renderedFields HTML over the raw ADF."""
    if not issue:
        return ''
    rendered = (issue.get('renderedFields') or {}).get('description')
    if isinstance(rendered, str) and rendered:
        plain = html_to_text(rendered)
        if plain:
            return plain
    fields = issue.get('fields') or {}
    return adf_to_text(fields.get('description'))


def wrap_text(text: Optional[str], width: int = 80) -> List[str]:
    """Wrap each non-empty line as a paragraph, separating paragraphs with a blank line."""
    lines: List[str] = []
    if not text:
        return lines
    for paragraph in str(text).split('\n'):
        if not paragraph:
            continue
        lines.extend(textwrap.wrap(paragraph, width=width, break_long_words=False, break_on_hyphens=False))
        lines.append('')
    if lines and lines[-1] == '':
        lines.pop()
    return lines


def _fix_timezone(value: str) -> str:
    # Jira sends -0500; fromisoformat wants -05:00
    if value.endswith('Z'):
        return value[:-1] + '+00:00'
    if value.count(':') == 2 and ('+' in value[-5:] or '-' in value[-5:]):
        return value[:-2] + ':' + value[-2:]
    return value


def parse_jira_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Jira date or datetime string; aware values are converted to local time."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(_fix_timezone(value))
    except ValueError:
        match = _TIMESTAMP.match(value)
        if not match:
            return None
        year, month, day, hour, minute, second = match.groups()
        try:
            return datetime(int(year), int(month), int(day),
                            int(hour or 0), int(minute or 0), int(second or 0))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        return parsed.astimezone()
    return parsed


def format_date(value: Any) -> str:
    """Render a Jira timestamp as 'YYYY-MM-DD HH:MM' (unparseable strings pass through)."""
    if not value or not isinstance(value, str):
        return ''
    parsed = parse_jira_timestamp(value)
    if parsed is None:
        return value
    return parsed.strftime('%Y-%m-%d %H:%M')


def humanize_duration(seconds: Any) -> str:
    """Compact duration using at most two units, e.g. '3d 4h', '2h 5m', 'Under 1m'."""
    try:
        remaining = int(float(seconds))
    except (TypeError, ValueError):
        remaining = 0
    if remaining <= 0:
        return 'Under 1m'

    parts = []
    for label, unit in (('d', 86400), ('h', 3600), ('m', 60)):
        value = remaining // unit
        if value > 0:
            parts.append(f"{value}{label}")
            remaining -= value * unit
        if len(parts) == 2:
            break

    return ' '.join(parts) if parts else 'Under 1m'


def open_duration(fields: dict, now: Optional[datetime] = None) -> Optional[str]:
    """How long the issue has been (or was) open: created until resolution date or now."""
    created = parse_jira_timestamp(fields.get('created'))
    if created is None:
        return None
    end = parse_jira_timestamp(fields.get('resolutiondate'))
    if end is None:
        end = now or (datetime.now(timezone.utc).astimezone() if created.tzinfo else datetime.now())
    if (created.tzinfo is None) != (end.tzinfo is None):
        created = created.replace(tzinfo=None)
        end = end.replace(tzinfo=None)
    return humanize_duration((end - created).total_seconds())


def comment_body(comment: Optional[dict]) -> str:
    if not comment:
        return ''
    body = comment.get('body')
    if isinstance(body, str):
        return body.strip()
    return adf_to_text(body)


def user_name(user: Any) -> Optional[str]:
    """Display name for a Jira user object."""
    if not user or not isinstance(user, dict):
        return None
    return user.get('displayName') or user.get('name') or user.get('emailAddress')


def _option_value(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get('value') or value.get('name') or value.get('displayName') or value.get('text')
    return value


def get_severity(issue: dict) -> Optional[str]:
    """Severity from a 'severity' field or any custom field whose name mentions severity."""
    fields = issue.get('fields') or {}
    if fields.get('severity'):
        return _option_value(fields['severity'])

    for field_id, label in (issue.get('names') or {}).items():
        if isinstance(label, str) and 'severity' in label.lower() and fields.get(field_id):
            return _option_value(fields[field_id])
    return None


def blank_if_nil(value: Any) -> Any:
    if value is None or value == '':
        return '-'
    return value


def issue_url(base_url: str, issue_key: str) -> str:
    return f"{base_url.rstrip('/')}/browse/{issue_key}"


def open_url(url: str) -> bool:
    """Open a URL in the default browser."""
    if not url:
        return False
    return webbrowser.open(url)
