#!/usr/bin/env python3

"""
Jira History - Persistent search and viewed-issue history
Both stores are flat JSON arrays on disk, oldest entry first, capped at a configured size
"""

import json
from pathlib import Path
from typing import Any, List, Optional, Union

from jira_config import clamp_limit, data_dir
from jira_utils import trim


SEARCH_HISTORY_FILE = 'search_history.json'
ISSUE_HISTORY_FILE = 'issue_history.json'


class HistoryStore:
    """Most-recent-wins list persisted as JSON.

    Entries are kept oldest-first in memory and on disk; re-recording an
    existing entry moves it to the end. `entries()` returns newest first.
    Subclasses define what an entry is and how it is identified.
    """

    def __init__(self, path: Path, limit: Any):
        self.path = Path(path)
        self.limit = clamp_limit(limit)
        self.items: List[Any] = []

    def _identity(self, entry: Any) -> Any:
        raise NotImplementedError

    def _normalize(self, raw: Any) -> Optional[Any]:
        """Turn a decoded JSON element into an entry, or None to drop it."""
        raise NotImplementedError

    def _push(self, entry: Any) -> None:
        identity = self._identity(entry)
        self.items = [item for item in self.items if self._identity(item) != identity]
        self.items.append(entry)

    def trim(self, persist: bool = False) -> None:
        """Drop the oldest entries beyond the limit (a limit of 0 clears everything)."""
        if self.limit <= 0:
            self.items = []
        elif len(self.items) > self.limit:
            self.items = self.items[-self.limit:]
        if persist:
            self.save()

    def load(self) -> List[Any]:
        """Read the history file; missing or corrupt files yield an empty history."""
        self.items = []
        try:
            with open(self.path, 'r') as f:
                contents = f.read()
        except OSError:
            return self.items

        if not contents.strip():
            return self.items
        try:
            decoded = json.loads(contents)
        except ValueError:
            return self.items
        if not isinstance(decoded, list):
            return self.items

        for raw in decoded:
            entry = self._normalize(raw)
            if entry is not None:
                self._push(entry)
        self.trim(persist=True)
        return self.items

    def save(self) -> None:
        """Write the history to disk; does nothing when history is disabled (limit 0)."""
        if self.limit <= 0:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self.items, f)
        except OSError:
            # Can't write history - degrade gracefully
            pass

    def entries(self) -> List[Any]:
        """History, most recent first."""
        return list(reversed(self.items))

    def clear(self) -> None:
        self.items = []
        if self.limit > 0:
            self.save()

    def __len__(self) -> int:
        return len(self.items)


class SearchHistory(HistoryStore):
    """Submitted JQL queries."""

    def _identity(self, entry: str) -> str:
        return entry

    def _normalize(self, raw: Any) -> Optional[str]:
        if not isinstance(raw, str):
            return None
        return trim(raw) or None

    def record(self, query: Optional[str]) -> bool:
        """Store a submitted query. Returns False for blank input."""
        cleaned = trim(query)
        if not cleaned:
            return False
        self._push(cleaned)
        self.trim(persist=True)
        return True


class IssueHistory(HistoryStore):
    """Issues that were successfully opened, stored as {key, summary}."""

    def _identity(self, entry: dict) -> str:
        return entry['key']

    def _normalize(self, raw: Any) -> Optional[dict]:
        if isinstance(raw, dict) and isinstance(raw.get('key'), str) and raw['key']:
            summary = raw.get('summary')
            return {'key': raw['key'], 'summary': trim(summary if isinstance(summary, str) else '')}
        if isinstance(raw, str) and raw:
            return {'key': raw, 'summary': ''}
        return None

    def record(self, issue: Union[dict, None]) -> bool:
        """Store an opened issue.

        Accepts either a Jira issue payload (summary read from fields.summary or
        fields.title) or a plain {key, summary} entry.
        """
        if not issue or not issue.get('key'):
            return False
        fields = issue.get('fields')
        if isinstance(fields, dict):
            summary = fields.get('summary') or fields.get('title') or ''
        else:
            summary = issue.get('summary') or ''
        self._push({'key': issue['key'], 'summary': trim(summary)})
        self.trim(persist=True)
        return True

    def summary_for(self, issue_key: str) -> Optional[str]:
        """Most recently stored non-empty summary for a key."""
        for entry in reversed(self.items):
            if entry['key'] == issue_key and entry['summary']:
                return entry['summary']
        return None


def load_search_history(config: dict, directory: Optional[Path] = None) -> SearchHistory:
    store = SearchHistory((directory or data_dir()) / SEARCH_HISTORY_FILE,
                          (config.get('search') or {}).get('history_size', 0))
    store.load()
    return store


def load_issue_history(config: dict, directory: Optional[Path] = None) -> IssueHistory:
    store = IssueHistory((directory or data_dir()) / ISSUE_HISTORY_FILE,
                         (config.get('history') or {}).get('history_size', 0))
    store.load()
    return store
