#!/usr/bin/env python3

"""
Jira Render - Plain-text layouts for issue details, issue lists and the hover statusline

Every function returns a list of lines (or a single line) so the CLI and any
other front-end can print them directly.
"""

from typing import Callable, Dict, List, Optional, Tuple

from jira_utils import (
    blank_if_nil,
    comment_body,
    format_date,
    get_severity,
    open_duration,
    requested_description,
    trim,
    user_name,
    wrap_text,
)


def _rule(char: str, width: int, minimum: int) -> str:
    return char * max(minimum, width)


def _names_of(values) -> Optional[str]:
    names = [v.get('name') for v in values or [] if isinstance(v, dict) and v.get('name')]
    return ', '.join(names) or None


def _distinct_assignees(issue: dict) -> Optional[str]:
    """Everyone who has held the issue, in order of first assignment."""
    names: List[str] = []
    histories = (issue.get('changelog') or {}).get('histories') or []
    # Jira returns the changelog newest first
    for history in reversed(histories):
        for item in history.get('items') or []:
            if (item.get('field') or item.get('fieldId')) != 'assignee':
                continue
            for name in (item.get('fromString'), item.get('toString')):
                if name and name not in names:
                    names.append(name)
    current = user_name((issue.get('fields') or {}).get('assignee'))
    if current and current not in names:
        names.append(current)
    return ', '.join(names) or None


def _comment_count(fields: dict) -> int:
    comment = fields.get('comment') or {}
    total = comment.get('total')
    if isinstance(total, int):
        return total
    return len(comment.get('comments') or [])


def _change_count(issue: dict) -> int:
    changelog = issue.get('changelog') or {}
    total = changelog.get('total')
    if isinstance(total, int):
        return total
    return len(changelog.get('histories') or [])


def _field(name: str) -> Callable[[dict], Optional[str]]:
    return lambda issue: ((issue.get('fields') or {}).get(name) or {}).get('name')


DETAIL_FIELDS: Dict[str, Tuple[str, Callable[[dict], object]]] = {
    'key': ('Key', lambda issue: issue.get('key')),
    'status': ('Status', _field('status')),
    'resolution': ('Resolution', _field('resolution')),
    'priority': ('Priority', _field('priority')),
    'severity': ('Severity', get_severity),
    'assignee': ('Assignee', lambda issue: user_name((issue.get('fields') or {}).get('assignee'))),
    'reporter': ('Reporter', lambda issue: user_name((issue.get('fields') or {}).get('reporter'))),
    'created': ('Created', lambda issue: format_date((issue.get('fields') or {}).get('created'))),
    'updated': ('Updated', lambda issue: format_date((issue.get('fields') or {}).get('updated'))),
    'due': ('Due', lambda issue: format_date((issue.get('fields') or {}).get('duedate'))),
    'fix_versions': ('Fix versions', lambda issue: _names_of((issue.get('fields') or {}).get('fixVersions'))),
    'affects_versions': ('Affects versions', lambda issue: _names_of((issue.get('fields') or {}).get('versions'))),
    'open_duration': ('Open for', lambda issue: open_duration(issue.get('fields') or {})),
    'comments': ('Comments', lambda issue: _comment_count(issue.get('fields') or {})),
    'changes': ('Changes', _change_count),
    'assignees': ('Assignees', _distinct_assignees),
    'labels': ('Labels', lambda issue: ', '.join((issue.get('fields') or {}).get('labels') or []) or None),
}


def details_lines(issue: dict, width: int, details_fields: Optional[List[str]] = None) -> List[str]:
    """Sidebar with one 'Label: value' line per configured detail field."""
    lines = ['Details', _rule('-', width - 2, 10)]
    for name in details_fields or list(DETAIL_FIELDS):
        entry = DETAIL_FIELDS.get(name)
        if entry is None:
            continue
        label, getter = entry
        lines.append(f"{label}: {blank_if_nil(getter(issue))}")
    return lines


def activity_lines(issue: dict, width: int, max_changes: int = 30) -> List[str]:
    """Comments followed by the most recent changelog entries."""
    lines: List[str] = []
    wrap_width = max(20, width - 2)

    comments = ((issue.get('fields') or {}).get('comment') or {}).get('comments') or []
    if comments:
        lines.append('Comments')
        lines.append(_rule('-', width, 10))
        for comment in comments:
            author = user_name(comment.get('author')) or 'Unknown'
            timestamp = format_date(comment.get('updated') or comment.get('created'))
            lines.append(f"[{timestamp or '--'}] {author}")
            for wrapped in wrap_text(comment_body(comment), wrap_width):
                lines.append(f"  {wrapped}")
            lines.append('')

    histories = (issue.get('changelog') or {}).get('histories') or []
    if histories:
        lines.append('Changes')
        lines.append(_rule('-', width, 10))
        for history in histories[:max_changes]:
            author = user_name(history.get('author')) or 'Unknown'
            timestamp = format_date(history.get('created'))
            lines.append(f"[{timestamp or '--'}] {author}")
            for item in history.get('items') or []:
                before = item.get('fromString') or item.get('from') or ''
                after = item.get('toString') or item.get('to') or ''
                field_name = item.get('field') or item.get('fieldId') or 'field'
                lines.append(f"  {field_name}: {blank_if_nil(before)} -> {blank_if_nil(after)}")
            lines.append('')

    return lines or ['No recent activity.']


def main_lines(issue: dict, width: int, max_changes: int = 30, url: Optional[str] = None) -> List[str]:
    """Summary header, description and activity for the main pane."""
    fields = issue.get('fields') or {}
    summary = fields.get('summary') or '(no summary)'
    description = requested_description(issue) or 'No description available.'

    lines = [f"{issue.get('key', '')} — {summary}", _rule('=', width, 20)]
    lines.append('Description')
    lines.append(_rule('-', width, 10))
    lines.extend(wrap_text(description, max(20, width)))
    lines.append('')
    lines.append('Activity')
    lines.append(_rule('-', width, 10))
    lines.extend(activity_lines(issue, width, max_changes))
    if url:
        lines.append('')
        lines.append(_rule('-', width, 10))
        lines.append(f"Open in browser: {url}")
    return lines


def compose_panes(left: List[str], right: List[str], left_width: int, separator: str = ' │ ') -> List[str]:
    """Place two line lists side by side; the left pane is padded/cut to left_width."""
    rows = max(len(left), len(right))
    out = []
    for index in range(rows):
        left_text = left[index] if index < len(left) else ''
        right_text = right[index] if index < len(right) else ''
        out.append(f"{left_text[:left_width]:<{left_width}}{separator}{right_text}".rstrip())
    return out


def navigation_line(keys: List[str], index: int) -> str:
    """'Issue 2/5 • prev: ABC-1 • next: ABC-3' for navigating issues found in a text."""
    parts = [f"Issue {index + 1}/{len(keys)}"]
    if index > 0:
        parts.append(f"prev: {keys[index - 1]}")
    if index < len(keys) - 1:
        parts.append(f"next: {keys[index + 1]}")
    return ' • '.join(parts)


def render_issue(issue: dict, config: dict, width: int, url: Optional[str] = None,
                 navigation: Optional[Tuple[List[str], int]] = None) -> List[str]:
    """Full issue view: main pane on the left, details sidebar on the right.

    Narrow terminals (where the main pane would drop under 40 columns) stack
    the sidebar below the main pane instead.
    """
    issue_config = config.get('issue') or {}
    sidebar_width = issue_config.get('sidebar_width') or 34
    max_changes = issue_config.get('max_changes') or 30
    details_fields = issue_config.get('details_fields')

    main_width = width - sidebar_width - 3
    lines: List[str] = []
    if navigation and navigation[0]:
        lines.append(navigation_line(*navigation))
        lines.append('')

    if main_width < 40:
        lines.extend(main_lines(issue, width, max_changes, url))
        lines.append('')
        lines.extend(details_lines(issue, width, details_fields))
        return lines

    main = main_lines(issue, main_width, max_changes, url)
    sidebar = details_lines(issue, sidebar_width, details_fields)
    lines.extend(compose_panes(main, sidebar, main_width))
    return lines


def pagination_footer(total: Optional[int], start_at: int, count: int, page_size: int,
                      page: Optional[int] = None) -> str:
    """'Page 2/4 • 51-100 of 180'."""
    page_size = max(1, page_size)
    if page is None:
        page = start_at // page_size + 1
    if not total or total <= 0:
        total = start_at + count
    total_pages = max(page, (total + page_size - 1) // page_size)
    if count:
        span = f"{start_at + 1}-{start_at + count} of {total}"
    else:
        span = f"0 of {total}"
    return f"Page {page}/{total_pages} • {span}"


def issue_list_lines(entries: List[dict], title: str, width: int, subtitle: Optional[str] = None,
                     empty_message: str = 'No issues.', footer: Optional[str] = None) -> List[str]:
    """Title, optional subtitle, then one 'KEY  summary' row per entry."""
    lines = [title]
    if subtitle:
        lines.append(subtitle)
    lines.append(_rule('-', width, 10))

    if not entries:
        lines.append(empty_message)
    else:
        key_width = max(len(entry.get('key', '')) for entry in entries)
        for entry in entries:
            summary = ' '.join((entry.get('summary') or '').split())
            status = entry.get('status')
            row = f"{entry.get('key', ''):<{key_width}}  "
            if status:
                row += f"[{status}] "
            row += summary
            lines.append(truncate(row, width))

    if footer:
        lines.append(_rule('-', width, 10))
        lines.append(footer)
    return lines


def truncate(text: str, limit: int, suffix: str = '...') -> str:
    """Cut text to limit characters, ending in suffix when shortened (limit <= 0 means no limit)."""
    text = text or ''
    if limit <= 0 or len(text) <= limit:
        return text
    if limit <= len(suffix):
        return suffix[:limit]
    return text[:limit - len(suffix)] + suffix


def statusline_text(issue_key: str, details, width: int, statusline_config: Optional[dict] = None) -> str:
    """One-line hover summary for an issue key.

    Format: 'JIRA: [KEY] summary [status][resolution] assignee: A reporter: R',
    with the summary shortened so the whole line fits in width (falling back to
    statusline.max_length when width is unknown).
    """
    if not issue_key:
        return ''
    statusline_config = statusline_config or {}
    if isinstance(details, dict):
        info = details
    elif details is not None:
        info = {'summary': details}
    else:
        info = {}

    status = trim(info.get('status')) or 'Unknown'
    resolution = trim(info.get('resolution')) or 'Unresolved'
    assignee = trim(info.get('assignee')) or 'Unassigned'
    reporter = trim(info.get('reporter')) or 'Unknown'

    prefix = f"JIRA: [{issue_key}] "
    suffix = f" [{status}][{resolution}] assignee: {assignee} reporter: {reporter}"

    summary = trim(info.get('summary')) or trim(statusline_config.get('empty_text'))
    available = max(0, (width or 0) - len(prefix) - len(suffix))
    if available <= 0:
        available = max(0, int(statusline_config.get('max_length') or 0))
    return f"{prefix}{truncate(summary, available)}{suffix}"
