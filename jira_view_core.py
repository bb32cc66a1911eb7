"""
Jira View Controllers - Business logic behind the issue, list, prompt and hover views

This module holds the stateful controllers; rendering lives in jira_render and
transport in jira_api. All controllers are UI-agnostic and testable with a mock API.

Threading Design Principles:
1. Never hold locks during I/O - locks only for memory updates
2. Daemon threads (or timers) for background work - clean shutdown
3. Results are delivered through callbacks; stale results are dropped

Controllers:
- IssueController: Open issues, navigate between keys found in a text, list text issues
- SearchController: JQL search with continuation-token paging and search history
- AssignedController: Offset-paged list of issues assigned to the current user
- SuggestionController: Debounced JQL value suggestions with a per-prompt cache
- HoverController: Statusline text for the issue key under the cursor
"""

from typing import Callable, Dict, List, Optional, Set, Tuple
from dataclasses import dataclass, field
import sys
import threading

from jira_history import IssueHistory, SearchHistory
from jira_jql import collapse_single_line, parse_suggestion_response, suggestion_cache_key
from jira_keys import IssueNavigator, IssueScanner, issue_preview
from jira_render import render_issue, statusline_text
from jira_utils import issue_url, trim


@dataclass
class IssueView:
    """
    Result of opening an issue.

    Attributes:
        key: Requested issue key
        issue: Raw issue payload (None on error)
        lines: Rendered lines (empty on error)
        url: Browser URL for the issue
        error: Error message when the fetch failed
    """
    key: str
    issue: Optional[dict] = None
    lines: List[str] = field(default_factory=list)
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PageResult:
    """
    One page of an issue list.

    Attributes:
        issues: Flattened issues ({key, summary, status, fields})
        page: 1-based page number
        start_at: 0-based index of the first issue on this page
        page_size: Requested page size
        total: Total number of matches (estimated when the API omits it)
        has_prev: Whether a previous page exists
        has_next: Whether a next page exists
        empty_message: Text to show when the page has no issues
        error: Error message when the request failed
    """
    issues: List[dict]
    page: int = 1
    start_at: int = 0
    page_size: int = 50
    total: int = 0
    has_prev: bool = False
    has_next: bool = False
    empty_message: str = 'No issues.'
    error: Optional[str] = None


class IssueController:
    """
    Opens issues and tracks navigation between the keys found in one text.

    Every successfully opened issue is recorded in the viewed-issue history.
    """

    def __init__(self, api, config: dict, history: Optional[IssueHistory] = None):
        """
        Args:
            api: JiraApi instance (or anything with the same methods)
            config: Effective configuration
            history: Viewed-issue history to record into
        """
        self.api = api
        self.config = config
        self.history = history
        self.scanner = IssueScanner(config)
        self.navigator: Optional[IssueNavigator] = None

    def open_issue(self, issue_key: str, navigator: Optional[IssueNavigator] = None,
                   width: int = 120) -> IssueView:
        """
        Fetch and render one issue.

        Args:
            issue_key: Issue key (e.g., "PROJ-123")
            navigator: Navigation state to focus on the opened key
            width: Available width for rendering

        Returns:
            IssueView with rendered lines, or with error set
        """
        issue_key = trim(issue_key)
        if not issue_key:
            return IssueView(key='', error='No issue key given.')

        issue, error = self.api.fetch_issue(issue_key)
        if error or not issue:
            return IssueView(key=issue_key, error=error or f"Issue {issue_key} not found")

        if self.history is not None:
            self.history.record(issue)

        if navigator is not None:
            navigator.focus(issue_key)
            self.navigator = navigator

        url = issue_url(self.api.base_url, issue.get('key') or issue_key)
        navigation = None
        if self.navigator is not None and self.navigator.total > 1:
            navigation = (self.navigator.keys, self.navigator.index)
        lines = render_issue(issue, self.config, width, url=url, navigation=navigation)
        return IssueView(key=issue_key, issue=issue, lines=lines, url=url)

    def open_at(self, text: str, line: int, col: int, width: int = 120) -> IssueView:
        """
        Open the issue whose key sits under a 1-based line/column position.

        Navigation is anchored on that key across all keys in the text.
        """
        lines = text.splitlines()
        if line < 1 or line > len(lines):
            return IssueView(key='', error='No Jira issue key under cursor.')

        issue_key = self.scanner.find_issue_at(lines[line - 1], col - 1)
        if not issue_key:
            return IssueView(key='', error='No Jira issue key under cursor.')

        navigator = IssueNavigator.from_issues(self.scanner.collect_issues(text), issue_key)
        return self.open_issue(issue_key, navigator, width)

    def step(self, delta: int, width: int = 120) -> Optional[IssueView]:
        """Open the previous (-1) or next (+1) issue; None when there is nowhere to go."""
        if self.navigator is None:
            return None
        issue_key = self.navigator.move(delta)
        if issue_key is None:
            return None
        return self.open_issue(issue_key, self.navigator, width)

    def text_issues(self, text: str) -> Tuple[List[dict], Optional[str]]:
        """
        List the unique issue keys of a text with the best summary available.

        Summaries come from one batched search; when it fails, the line preview
        is used and the error is returned as a warning.

        Returns:
            (entries, warning) where entries are {key, summary, line, col}
        """
        issues = self.scanner.collect_issues(text)
        entries = [{'key': issue.key, 'summary': issue_preview(issue), 'line': issue.line, 'col': issue.col}
                   for issue in issues]
        if not entries:
            return entries, None

        limit = (self.config.get('buffer') or {}).get('max_summaries') or 200
        summaries, error = self.api.fetch_issue_summaries([entry['key'] for entry in entries][:limit])
        for entry in entries:
            summary = (summaries or {}).get(entry['key'])
            if summary:
                entry['summary'] = summary
        warning = f"failed to load Jira summaries for text issues: {error}" if error else None
        return entries, warning


class SearchController:
    """
    Runs JQL searches with continuation-token paging.

    Page 1 is requested without a token (unless one is supplied). When a page
    comes back with a next-page token it is stored verbatim as the token for
    the following page, so moving back and forth reuses known tokens.
    """

    def __init__(self, api, config: dict, history: Optional[SearchHistory] = None):
        self.api = api
        self.config = config
        self.history = history
        self.jql: Optional[str] = None
        self.last_query: Optional[str] = None
        self.page = 1
        self.page_tokens: Dict[int, Optional[str]] = {}

    @property
    def page_size(self) -> int:
        return max(1, (self.config.get('search') or {}).get('max_results') or 50)

    def submit(self, query: Optional[str], page_token: Optional[str] = None,
               page: int = 1) -> Optional[PageResult]:
        """
        Submit a query from the prompt.

        Blank input is ignored (returns None). The raw input is remembered as
        the last query and recorded in the search history.

        Args:
            query: JQL as typed
            page_token: Optional token to start from instead of the first page
            page: 1-based number of the page page_token leads to
        """
        jql = trim(query)
        if not jql:
            return None
        self.last_query = query
        if self.history is not None:
            self.history.record(query)

        self.jql = jql
        page = max(1, page or 1) if page_token else 1
        self.page_tokens = {page: page_token}
        return self.load_page(page)

    def load_page(self, page: int) -> PageResult:
        """Fetch a page whose token is known (page 1 always is)."""
        if not self.jql:
            return PageResult(issues=[], error='No JQL query submitted.')
        if page < 1 or page not in self.page_tokens:
            return PageResult(issues=[], page=page, error='No more pages.')

        result, error = self.api.search_issues(
            self.jql,
            max_results=self.page_size,
            next_page_token=self.page_tokens[page],
        )
        empty_message = f"No issues match JQL: {collapse_single_line(self.jql)}"
        if error or result is None:
            return PageResult(issues=[], page=page, empty_message=empty_message,
                              error=error or 'Search failed.')

        self.page = page
        issues = result.get('issues') or []
        page_size = max(1, result.get('max_results') or self.page_size)
        start_at = result.get('start_at')
        start_at = (page - 1) * page_size if start_at is None else max(0, start_at)

        next_token = result.get('next_page_token')
        if next_token:
            self.page_tokens[page + 1] = next_token
        else:
            self.page_tokens.pop(page + 1, None)

        total = result.get('total') or 0
        if total <= 0:
            total = start_at + len(issues)
        return PageResult(
            issues=issues,
            page=page,
            start_at=start_at,
            page_size=page_size,
            total=total,
            has_prev=page - 1 in self.page_tokens,
            has_next=bool(next_token),
            empty_message=empty_message,
        )

    def next_page(self) -> PageResult:
        return self.load_page(self.page + 1)

    def prev_page(self) -> PageResult:
        return self.load_page(self.page - 1)


class AssignedController:
    """Offset-paged list of unresolved issues assigned to the current user."""

    EMPTY_MESSAGE = 'No unresolved issues assigned to you.'

    def __init__(self, api, config: dict):
        self.api = api
        self.config = config
        self.start_at = 0
        self.last: Optional[PageResult] = None

    @property
    def page_size(self) -> int:
        return max(1, (self.config.get('assigned') or {}).get('max_results') or 50)

    def load(self, start_at: int = 0) -> PageResult:
        """
        Fetch the page starting at a 0-based offset.

        A next page exists when this page is full and, if the API reported a
        total, the page does not reach it.
        """
        start_at = max(0, start_at or 0)
        result, error = self.api.fetch_assigned_issues(start_at=start_at)
        if error or result is None:
            return PageResult(issues=[], start_at=start_at, page_size=self.page_size,
                              empty_message=self.EMPTY_MESSAGE, error=error or 'Search failed.')

        issues = result.get('issues') or []
        page_size = max(1, result.get('max_results') or self.page_size)
        start_idx = max(0, result.get('start_at') or start_at)
        reported_total = result.get('total')
        total = reported_total if reported_total and reported_total > 0 else start_idx + len(issues)

        has_next = len(issues) == page_size and (not reported_total or start_idx + len(issues) < reported_total)

        self.start_at = start_idx
        self.last = PageResult(
            issues=issues,
            page=start_idx // page_size + 1,
            start_at=start_idx,
            page_size=page_size,
            total=total,
            has_prev=start_idx > 0,
            has_next=has_next,
            empty_message=self.EMPTY_MESSAGE,
        )
        return self.last

    def next_page(self) -> Optional[PageResult]:
        if self.last is None or not self.last.has_next:
            return None
        return self.load(self.start_at + self.last.page_size)

    def prev_page(self) -> Optional[PageResult]:
        if self.last is None or not self.last.has_prev:
            return None
        return self.load(max(0, self.start_at - self.last.page_size))


class SuggestionController:
    """
    Debounced value suggestions for the JQL prompt.

    Each keystroke calls request(); only the last request inside the debounce
    window reaches the API. Answers are cached per prompt under `field::prefix`
    (lower-cased), and cached answers are delivered immediately.

    Thread Safety:
    - request()/cancel(): Safe from any thread
    - Callbacks run on the timer thread (or the caller's thread for cache hits)
    - Internal lock protects timer, generation and cache only; never held during I/O
    """

    def __init__(self, api, debounce_ms: int = 200):
        """
        Args:
            api: JiraApi instance (handles the suggestions endpoint)
            debounce_ms: Quiet period before a request is sent
        """
        self.api = api
        self.delay = max(0, debounce_ms or 0) / 1000.0
        self.cache: Dict[str, List[str]] = {}
        self.lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    def request(self, field_name: Optional[str], prefix: Optional[str],
                callback: Callable[[List[str], Optional[str]], None]) -> bool:
        """
        Ask for suggestions; the callback receives (items, error).

        Returns:
            True when answered from cache, False when a fetch was scheduled
            (or nothing was requested because the field is empty)
        """
        field_name = trim(field_name)
        prefix = prefix or ''
        if not field_name:
            self.cancel()
            return False

        cache_key = suggestion_cache_key(field_name, prefix)
        with self.lock:
            cached = self.cache.get(cache_key)
            if cached is None:
                self._cancel_timer()
                self._generation += 1
                generation = self._generation
                self._timer = threading.Timer(self.delay, self._fetch,
                                              args=(field_name, prefix, cache_key, generation, callback))
                self._timer.daemon = True
                self._timer.start()

        if cached is not None:
            self.cancel()
            callback(list(cached), None)
            return True
        return False

    def suggest_now(self, field_name: str, prefix: str) -> Tuple[List[str], Optional[str]]:
        """Synchronous lookup that shares the cache with request()."""
        cache_key = suggestion_cache_key(field_name, prefix or '')
        with self.lock:
            cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached), None

        response, error = self.api.fetch_jql_suggestions(field_name, prefix or '')
        if error:
            return [], error
        items = parse_suggestion_response(response)
        with self.lock:
            self.cache[cache_key] = items
        return list(items), None

    def _fetch(self, field_name: str, prefix: str, cache_key: str, generation: int,
               callback: Callable[[List[str], Optional[str]], None]) -> None:
        # Network I/O happens here (NO LOCK HELD)
        response, error = self.api.fetch_jql_suggestions(field_name, prefix)
        items = [] if error else parse_suggestion_response(response)

        with self.lock:
            if not error:
                self.cache[cache_key] = items
            stale = generation != self._generation

        if not stale:
            callback(list(items), error)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> None:
        """Drop any pending request; in-flight answers are discarded."""
        with self.lock:
            self._cancel_timer()
            self._generation += 1

    def reset(self) -> None:
        """Start a new prompt: cancel pending work and forget cached answers."""
        self.cancel()
        with self.lock:
            self.cache.clear()


class HoverController:
    """
    Statusline text for the issue key under the cursor.

    Complete summaries are cached per key. While a fetch is pending, the
    loading text (or a summary already known from the viewed-issue history)
    is shown; failures show the configured error text.

    Thread Safety:
    - update(): Safe from any thread, never blocks on I/O
    - Fetches run on daemon threads; on_update is called from that thread
    - Internal lock protects cache, pending set, current message and thread list;
      debug output and callbacks happen after it is released
    """

    def __init__(self, api, config: dict, history: Optional[IssueHistory] = None,
                 on_update: Optional[Callable[[str], None]] = None, width: int = 0):
        """
        Args:
            api: JiraApi instance (provides fetch_issue_summary)
            config: Effective configuration (statusline section is used)
            history: Viewed-issue history for provisional summaries
            on_update: Called with the new message after a background fetch
            width: Statusline width; 0 falls back to statusline.max_length
        """
        self.api = api
        self.config = config
        self.statusline = config.get('statusline') or {}
        self.history = history
        self.on_update = on_update
        self.width = width
        self.cache: Dict[str, dict] = {}
        self.pending: Set[str] = set()
        self.current_key: Optional[str] = None
        self.message = ''
        self.lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    @property
    def enabled(self) -> bool:
        return bool(self.statusline.get('enabled', True))

    def _text(self, issue_key: str, details) -> str:
        return statusline_text(issue_key, details, self.width, self.statusline)

    def _debug(self, message: str) -> None:
        if self.config.get('debug'):
            print(f"jira-peek debug: {message}", file=sys.stderr)

    def update(self, issue_key: Optional[str], fetch: bool = True) -> str:
        """
        Refresh the message for the key under the cursor.

        Args:
            issue_key: Key under the cursor (None clears the message)
            fetch: Whether a missing or provisional summary may be fetched

        Returns:
            The message to display right now
        """
        if not self.enabled:
            return ''
        if not issue_key:
            with self.lock:
                self.current_key = None
                self.message = ''
            return ''

        thread = None
        with self.lock:
            moved = issue_key != self.current_key
            self.current_key = issue_key
            message, start_fetch = self._resolve(issue_key, fetch)
            if start_fetch:
                thread = threading.Thread(target=self._fetch, args=(issue_key,), daemon=True)
                self._threads = [t for t in self._threads if t.is_alive()]
                self._threads.append(thread)

        if moved:
            self._debug(f"cursor on issue {issue_key}{' (fetching)' if fetch else ''}")
        if thread is not None:
            thread.start()
        return message

    def _resolve(self, issue_key: str, fetch: bool) -> Tuple[str, bool]:
        # Caller holds self.lock
        cached = self.cache.get(issue_key)

        if cached is not None:
            self.message = self._text(issue_key, cached)
            if cached.get('_complete') or not fetch:
                return self.message, False

        if issue_key in self.pending:
            details = cached or {'summary': self.statusline.get('loading_text') or ''}
            self.message = self._text(issue_key, details)
            return self.message, False

        history_summary = self.history.summary_for(issue_key) if self.history is not None else None
        if history_summary and cached is None:
            cached = {'summary': trim(history_summary), '_complete': False}
            self.cache[issue_key] = cached
            self.message = self._text(issue_key, cached)
            if not fetch:
                return self.message, False

        if not fetch:
            self.message = issue_key
            return self.message, False

        self.pending.add(issue_key)
        self.message = self._text(issue_key, {'summary': self.statusline.get('loading_text') or ''})
        return self.message, True

    def _fetch(self, issue_key: str) -> None:
        # Fetch from API (NO LOCK HELD during I/O)
        summary, error = self.api.fetch_issue_summary(issue_key)

        failure = None
        message = None
        with self.lock:
            self.pending.discard(issue_key)
            if error:
                failure = f"summary fetch for {issue_key} failed: {error}"
                if self.current_key == issue_key:
                    self.message = self._text(issue_key, self.statusline.get('error_text') or '')
                    message = self.message
            else:
                summary = summary or {}
                self.cache[issue_key] = {
                    'summary': trim(summary.get('summary')),
                    'status': summary.get('status') or '',
                    'resolution': summary.get('resolution') or '',
                    'assignee': summary.get('assignee') or '',
                    'reporter': summary.get('reporter') or '',
                    '_complete': True,
                }
                if self.current_key == issue_key:
                    self.message = self._text(issue_key, self.cache[issue_key])
                    message = self.message

        if failure:
            self._debug(failure)
        if message is not None and self.on_update:
            self.on_update(message)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until background fetches started so far have finished."""
        with self.lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
        with self.lock:
            self._threads = [t for t in self._threads if t.is_alive()]

    def clear(self) -> None:
        with self.lock:
            self.current_key = None
            self.message = ''
