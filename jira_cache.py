#!/usr/bin/env python3

"""
Jira Peek Cache - JSON file cache for JQL metadata
One file holds a section per Jira base URL; each named entry carries its own TTL
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from jira_config import cache_dir


AUTOCOMPLETE_TTL = 86400  # 24 hours
CACHE_FILE = 'cache.json'


class JiraCache:
    """Named, expiring entries for one Jira instance.

    Entries look like {"stored_at": epoch, "ttl": seconds, "data": ...}.
    Sections of other instances sharing the file are left untouched on save.
    """

    def __init__(self, base_url: str, directory: Optional[Path] = None):
        """
        Args:
            base_url: Jira base URL, used as the section name
            directory: Cache directory (default: $XDG_CACHE_HOME/jira-peek)
        """
        self.base_url = base_url
        self.path = Path(directory or cache_dir()) / CACHE_FILE
        self.entries: Dict[str, dict] = self._read_section()

    def _read_file(self) -> Dict[str, Any]:
        with open(self.path, 'r') as f:
            contents = json.load(f)
        return contents if isinstance(contents, dict) else {}

    def _read_section(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            section = self._read_file().get(self.base_url)
        except (ValueError, OSError):
            # Unusable file: remove it so the next save starts clean
            try:
                self.path.unlink()
            except OSError:
                pass
            return {}
        if not isinstance(section, dict):
            return {}
        return {name: entry for name, entry in section.items() if isinstance(entry, dict)}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            try:
                contents = self._read_file() if self.path.exists() else {}
            except (ValueError, OSError):
                contents = {}
            contents[self.base_url] = self.entries
            with open(self.path, 'w') as f:
                json.dump(contents, f, indent=2)
        except OSError:
            # Read-only cache directory: keep working from memory
            pass

    def _fresh(self, name: str) -> Optional[dict]:
        entry = self.entries.get(name)
        if not entry or 'stored_at' not in entry or 'ttl' not in entry:
            return None
        if time.time() - entry['stored_at'] > entry['ttl']:
            return None
        return entry

    def get(self, name: str, force_refresh: bool = False) -> Optional[Any]:
        """Cached data for name, or None when missing, expired or force_refresh is set."""
        if force_refresh:
            return None
        entry = self._fresh(name)
        return entry.get('data') if entry else None

    def set(self, name: str, data: Any, ttl: int) -> None:
        """Store JSON-serialisable data under name for ttl seconds and persist."""
        self.entries[name] = {'stored_at': time.time(), 'ttl': ttl, 'data': data}
        self._write()

    def age(self, name: str) -> str:
        """How long ago name was stored: 'just now', '5m ago', '2h ago', '3d ago'."""
        entry = self.entries.get(name)
        if not entry or 'stored_at' not in entry:
            return 'never cached'

        seconds = time.time() - entry['stored_at']
        if seconds < 60:
            return 'just now'
        elif seconds < 3600:
            return f"{int(seconds / 60)}m ago"
        elif seconds < 86400:
            return f"{int(seconds / 3600)}h ago"
        return f"{int(seconds / 86400)}d ago"
