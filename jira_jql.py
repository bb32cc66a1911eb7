#!/usr/bin/env python3

"""
Jira JQL - Lexing, highlighting and completion helpers for JQL queries
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from jira_utils import trim


KEYWORDS = {
    'AND', 'OR', 'NOT', 'IN', 'IS', 'ORDER', 'BY', 'ASC', 'DESC',
    'EMPTY', 'NULL', 'ON', 'BEFORE', 'AFTER',
}
# Longest first so '!=' wins over '!'
OPERATORS = ['!=', '>=', '<=', '!~', '=', '>', '<', '~', '!']

STRING = 'string'
KEYWORD = 'keyword'
OPERATOR = 'operator'
FIELD = 'field'

COLORS = {
    KEYWORD: '\033[35m',
    STRING: '\033[32m',
    OPERATOR: '\033[33m',
    FIELD: '\033[36m',
}
RESET = '\033[0m'

DEFAULT_HELP = "Example: project = ABC AND status in ('In Progress', 'To Do') ORDER BY updated DESC"

_WORD = re.compile(r'[A-Za-z0-9_.]+')
_FIELD_FOLLOWER = re.compile(r'\s*[!<>=~]|\s+(?:not\s+)?in\s', re.IGNORECASE)
_ISSUE_KEY = re.compile(r'^[A-Za-z][A-Za-z0-9]+-\d+$')

_VALUE_CONTEXTS = [
    re.compile(r'([\w.]+)\s+not\s+in\s+[(\[]?(?:[^()\[\]]*,)?\s*([\w\s\-.]*)$', re.IGNORECASE),
    re.compile(r'([\w.]+)\s+in\s+[(\[]?(?:[^()\[\]]*,)?\s*([\w\s\-.]*)$', re.IGNORECASE),
    re.compile(r'([\w.]+)\s*[!<>=~]+\s*([\w\s\-.]*)$'),
]


@dataclass
class Token:
    """A highlighted span of a JQL line; end is exclusive."""
    kind: str
    start: int
    end: int
    text: str


def tokenize(line: str, fields: Optional[Iterable[str]] = None) -> List[Token]:
    """Split one line of JQL into non-overlapping highlight tokens.

    Quoted strings, keywords (whole words, any case) and operators are always
    recognised. Names from `fields` count as fields only when followed by an
    operator or IN.
    """
    tokens: List[Token] = []
    if not line:
        return tokens

    field_names = {f.lower() for f in fields or [] if isinstance(f, str)}
    pos = 0
    length = len(line)

    while pos < length:
        char = line[pos]

        if char in ('"', "'"):
            close = line.find(char, pos + 1)
            if close != -1:
                tokens.append(Token(STRING, pos, close + 1, line[pos:close + 1]))
                pos = close + 1
                continue
            pos += 1
            continue

        word = _WORD.match(line, pos)
        if word:
            text = word.group(0)
            if text.upper() in KEYWORDS:
                tokens.append(Token(KEYWORD, pos, word.end(), text))
            elif text.lower() in field_names and _FIELD_FOLLOWER.match(line, word.end()):
                tokens.append(Token(FIELD, pos, word.end(), text))
            pos = word.end()
            continue

        operator = next((op for op in OPERATORS if line.startswith(op, pos)), None)
        if operator:
            tokens.append(Token(OPERATOR, pos, pos + len(operator), operator))
            pos += len(operator)
            continue

        pos += 1

    return tokens


def highlight(line: str, fields: Optional[Iterable[str]] = None, use_colors: bool = True) -> str:
    """Return the line with ANSI colours applied to its tokens."""
    if not use_colors or not line:
        return line or ''
    out = []
    pos = 0
    for token in tokenize(line, fields):
        out.append(line[pos:token.start])
        out.append(f"{COLORS[token.kind]}{token.text}{RESET}")
        pos = token.end
    out.append(line[pos:])
    return ''.join(out)


def find_value_context(line: str, col: int) -> Tuple[Optional[str], Optional[str]]:
    """Field and partially typed value left of the 1-based cursor column.

    Handles `field = val`, `field in (a, val` and `field not in (val`.
    """
    if not line:
        return None, None
    before = line[:col]
    for pattern in _VALUE_CONTEXTS:
        match = pattern.search(before)
        if match:
            return match.group(1), trim(match.group(2))
    return None, None


def complete_fields(before_cursor: str, fields: Iterable[str]) -> List[str]:
    """Field names starting with the word being typed (needs two characters, no operator yet)."""
    if not before_cursor or re.search(r'[=!<>~]', before_cursor):
        return []
    match = re.search(r'([\w.]+)$', before_cursor)
    if not match or len(match.group(1)) < 2:
        return []
    prefix = match.group(1).lower()
    return [f for f in fields or [] if isinstance(f, str) and f.lower().startswith(prefix)]


def parse_suggestion_response(resp: Any) -> List[str]:
    """Suggestion texts from a Jira suggestions payload ('suggestions' or 'results' list)."""
    entries = None
    if isinstance(resp, dict):
        if isinstance(resp.get('suggestions'), list):
            entries = resp['suggestions']
        elif isinstance(resp.get('results'), list):
            entries = resp['results']

    items = []
    for entry in entries or []:
        text = None
        if isinstance(entry, str):
            text = entry
        elif isinstance(entry, dict):
            text = entry.get('displayName') or entry.get('text') or entry.get('value') or entry.get('name')
        if isinstance(text, str) and text:
            items.append(text)
    return items


def suggestion_cache_key(field: str, prefix: str) -> str:
    return f"{field.lower()}::{prefix.lower()}"


def collapse_single_line(jql: Optional[str]) -> str:
    """Collapse a multi-line query into one trimmed line."""
    if not jql:
        return ''
    return ' '.join(str(jql).split())


def normalize_jql_input(input_str: str) -> str:
    """
    Normalize JQL input - convert plain issue keys to JQL and upcase them.

    Args:
        input_str: User input (issue key or JQL query)

    Returns:
        Normalized JQL query string
    """
    stripped = input_str.strip()

    if _ISSUE_KEY.match(stripped):
        return f'key={stripped.upper()}'

    return stripped
