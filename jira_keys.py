#!/usr/bin/env python3

"""
Jira Keys - Issue key detection in arbitrary text
Finds keys under a cursor column, collects unique keys with previews, and tracks prev/next navigation
"""

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Pattern, Set

from jira_utils import trim


DEFAULT_ISSUE_PATTERN = r'[A-Z]+-\d+'
_KEY_SHAPE = re.compile(r'^([A-Za-z0-9]+)-\d+$')


@dataclass
class IssueMatch:
    """A key found in text. line and col are 1-based; end is exclusive (0-based)."""
    key: str
    line: int
    col: int
    end: int
    preview: str = ''


class IssueScanner:
    """Scans text for issue keys using the configured pattern and ignored projects."""

    def __init__(self, config: dict):
        self.pattern: Pattern = re.compile(config.get('issue_pattern') or DEFAULT_ISSUE_PATTERN)
        self.max_lines = config.get('max_lines', -1)
        ignored = config.get('_ignored_project_map')
        if ignored is None:
            ignored = {p.upper() for p in config.get('ignored_projects') or [] if p}
        self.ignored: Set[str] = set(ignored)

    def should_ignore(self, issue_key: Optional[str]) -> bool:
        """True when the key belongs to an ignored project (e.g. SEV-1)."""
        if not issue_key:
            return False
        match = _KEY_SHAPE.match(issue_key)
        if not match:
            return False
        return match.group(1).upper() in self.ignored

    def _iter_line(self, line: str) -> Iterator[re.Match]:
        for match in self.pattern.finditer(line):
            if match.group(0) and not self.should_ignore(match.group(0)):
                yield match

    def find_issue_at(self, line: str, col: int) -> Optional[str]:
        """Key whose span covers the 0-based column, if any."""
        if line is None or col is None:
            return None
        for match in self._iter_line(line):
            if match.start() <= col <= match.end() - 1:
                return match.group(0)
        return None

    def scan_spans(self, text: str) -> List[IssueMatch]:
        """Every occurrence of a key, limited to max_lines when it is positive."""
        lines = text.splitlines()
        if self.max_lines and self.max_lines > 0:
            lines = lines[:self.max_lines]
        spans = []
        for number, line in enumerate(lines, start=1):
            for match in self._iter_line(line):
                spans.append(IssueMatch(match.group(0), number, match.start() + 1, match.end()))
        return spans

    def collect_issues(self, text: str) -> List[IssueMatch]:
        """Unique keys in first-seen order, each with the line it first appeared on."""
        seen = set()
        issues = []
        for number, line in enumerate(text.splitlines(), start=1):
            for match in self._iter_line(line):
                key = match.group(0)
                if key in seen:
                    continue
                seen.add(key)
                issues.append(IssueMatch(key, number, match.start() + 1, match.end(), trim(line)))
        return issues


def issue_preview(issue: IssueMatch) -> str:
    """Line preview without the key itself, falling back to the L<line>:<col> location."""
    preview = ' '.join((issue.preview or '').split())
    if issue.key and preview:
        preview = ' '.join(preview.replace(issue.key, '').split())
    if preview:
        return preview
    if issue.line and issue.col:
        return f"L{issue.line}:{issue.col}"
    if issue.line:
        return f"L{issue.line}"
    return ''


@dataclass
class IssueNavigator:
    """Ordered issue keys with a cursor, used for prev/next between issues of one text."""
    keys: List[str] = field(default_factory=list)
    index: int = 0

    @classmethod
    def from_issues(cls, issues: List[IssueMatch], anchor: Optional[str] = None) -> Optional['IssueNavigator']:
        """Build navigation anchored on a key; a key not found in the text is appended."""
        keys = [issue.key for issue in issues]
        if anchor:
            if anchor not in keys:
                keys.append(anchor)
            return cls(keys, keys.index(anchor))
        if keys:
            return cls(keys, 0)
        return None

    @property
    def total(self) -> int:
        return len(self.keys)

    @property
    def current(self) -> Optional[str]:
        if not self.keys:
            return None
        self.index = min(max(self.index, 0), len(self.keys) - 1)
        return self.keys[self.index]

    @property
    def has_prev(self) -> bool:
        return self.index > 0

    @property
    def has_next(self) -> bool:
        return self.index < len(self.keys) - 1

    def move(self, delta: int) -> Optional[str]:
        """Step the cursor; returns the new key, or None when out of range (cursor unchanged)."""
        target = self.index + delta
        if not self.keys or target < 0 or target >= len(self.keys):
            return None
        self.index = target
        return self.keys[target]

    def focus(self, issue_key: str) -> None:
        if issue_key in self.keys:
            self.index = self.keys.index(issue_key)
