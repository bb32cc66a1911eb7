#!/usr/bin/env python3

"""
Jira API - curl-backed REST client for issue lookup, JQL search and autocomplete
Each call runs a single curl process and returns (result, error_message)
"""

import json
import subprocess
import sys
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import jira_errors
from jira_cache import AUTOCOMPLETE_TTL, JiraCache
from jira_config import DEFAULT_ASSIGNED_JQL, cache_disabled
from jira_errors import JiraError
from jira_utils import encode_basic_auth, trim, user_name


API_PREFIX = '/rest/api/3'
ISSUE_EXPAND = 'renderedFields,changelog,names,comment'
SUMMARY_FIELDS = 'summary,status,resolution,assignee,reporter'
DEFAULT_SEARCH_FIELDS = ['key', 'summary', 'status']
MAX_SUMMARY_BATCH = 200


def normalize_base_url(url: Optional[str]) -> str:
    if not url:
        return ''
    return url.rstrip('/')


def project_of(issue_key: str) -> Optional[str]:
    """Project prefix of an issue key ('ABC-12' -> 'ABC')."""
    project, sep, number = (issue_key or '').rpartition('-')
    if not sep or not project or not number.isdigit():
        return None
    return project


def _flatten_issue(issue: dict) -> dict:
    fields = issue.get('fields') or {}
    status = fields.get('status') or {}
    return {
        'key': issue.get('key', ''),
        'summary': trim(fields.get('summary')),
        'status': status.get('name', '') if isinstance(status, dict) else str(status),
        'fields': fields,
    }


def _names(entries: Any) -> List[str]:
    names = []
    for entry in entries or []:
        if isinstance(entry, str):
            name = entry
        elif isinstance(entry, dict):
            name = entry.get('value') or entry.get('displayName') or entry.get('name')
        else:
            name = None
        if name:
            names.append(name)
    return names


class JiraApi:
    """Jira REST API v3 client that shells out to curl."""

    def __init__(self, config: dict, cache: Optional[JiraCache] = None):
        """
        Args:
            config: Effective configuration (see jira_config.load_config)
            cache: Optional metadata cache; created lazily for the configured base URL
        """
        self.config = config
        self.api_config = config.get('api') or {}
        self.base_url = normalize_base_url(self.api_config.get('base_url'))
        self._cache = cache

    @property
    def cache(self) -> Optional[JiraCache]:
        if self._cache is None and self.base_url:
            self._cache = JiraCache(self.base_url)
        return self._cache

    def _debug(self, message: str) -> None:
        if self.config.get('debug'):
            print(f"jira-peek debug: {message}", file=sys.stderr)

    def _build_command(self, method: str, url: str, data: Optional[dict]) -> List[str]:
        cmd = [
            'curl',
            '-sS',
            '-X', method,
            '-H', 'Accept: application/json',
            '-H', 'Content-Type: application/json',
            # Auth header arrives on stdin so the token never shows up in `ps`
            '-K', '-',
            '-w', '\n%{http_code}',
        ]
        if data is not None:
            cmd.extend(['-d', json.dumps(data, separators=(',', ':'))])
        cmd.append(url)
        return cmd

    def request(self, method: str, path: str, data: Optional[dict] = None,
                resource: str = '') -> Tuple[Optional[Any], Optional[JiraError]]:
        """Run one API call.

        Args:
            method: HTTP method
            path: Path below /rest/api/3 (query string included)
            data: Optional JSON body
            resource: Human-readable resource name used in 404 messages

        Returns:
            (payload, None) on success, (None, JiraError) on any failure
        """
        if not self.base_url:
            return None, jira_errors.config_error('JIRA_BASE_URL is missing')

        auth, auth_error = encode_basic_auth(self.api_config.get('email'), self.api_config.get('token'))
        if auth_error:
            return None, jira_errors.config_error(auth_error)

        url = f"{self.base_url}{API_PREFIX}{path}"
        cmd = self._build_command(method, url, data)
        self._debug(f"{method} {url}")

        try:
            result = subprocess.run(
                cmd,
                input=f'header = "Authorization: Basic {auth}"\n',
                capture_output=True,
                text=True,
                timeout=self.api_config.get('timeout') or 30,
            )
        except subprocess.TimeoutExpired:
            return None, jira_errors.timeout_error(url)
        except OSError:
            return None, jira_errors.spawn_error()

        if result.returncode != 0:
            return None, jira_errors.classify_curl_failure(result.returncode, result.stderr, url)

        body, _, status_text = (result.stdout or '').rpartition('\n')
        try:
            status = int(status_text.strip())
        except ValueError:
            return None, jira_errors.parse_error()

        failure = jira_errors.classify_http_failure(status, body, resource)
        if failure:
            self._debug(f"{method} {url} -> {status}")
            return None, failure

        if not body.strip():
            return {}, None
        try:
            return json.loads(body), None
        except ValueError:
            return None, jira_errors.parse_error()

    def fetch_issue(self, issue_key: str) -> Tuple[Optional[dict], Optional[str]]:
        """Fetch a single issue with rendered fields, changelog, names and comments.

        A 404 triggers a lookup of the issue's project so the message can say
        whether the project or only the issue is missing.
        """
        if not issue_key:
            return None, 'missing issue key'

        issue, error = self.request('GET', f"/issue/{quote(issue_key)}?expand={ISSUE_EXPAND}",
                                    resource=f"issue {issue_key}")
        if error is None:
            if not isinstance(issue, dict):
                return None, jira_errors.PARSE_MESSAGE
            return issue, None

        if error.category != jira_errors.NOT_FOUND:
            return None, error.message
        return None, self._explain_missing_issue(issue_key).message

    def _explain_missing_issue(self, issue_key: str) -> JiraError:
        project = project_of(issue_key)
        if not project or not self.api_config.get('check_project_on_404', True):
            return jira_errors.issue_not_found(issue_key)

        _, project_error = self.request('GET', f"/project/{quote(project)}", resource=f"project {project}")
        if project_error is None:
            return jira_errors.issue_missing_in_project(issue_key, project)
        if project_error.category == jira_errors.NOT_FOUND:
            return jira_errors.project_not_found(project)
        return jira_errors.issue_not_found(issue_key)

    def fetch_issue_summary(self, issue_key: str) -> Tuple[Optional[dict], Optional[str]]:
        """Fetch just enough of an issue for a one-line summary."""
        issue, error = self.request('GET', f"/issue/{quote(issue_key)}?fields={SUMMARY_FIELDS}",
                                    resource=f"issue {issue_key}")
        if error:
            if error.category == jira_errors.NOT_FOUND:
                return None, jira_errors.issue_not_found(issue_key).message
            return None, error.message
        if not isinstance(issue, dict):
            return None, jira_errors.PARSE_MESSAGE

        fields = issue.get('fields')
        if not isinstance(fields, dict):
            fields = {}
        return {
            'key': issue.get('key') or issue_key,
            'summary': trim(fields.get('summary')),
            'status': ((fields.get('status') or {}).get('name')) or '',
            'resolution': ((fields.get('resolution') or {}).get('name')) or '',
            'assignee': user_name(fields.get('assignee')) or '',
            'reporter': user_name(fields.get('reporter')) or '',
        }, None

    def search_issues(self, jql: str, max_results: Optional[int] = None, start_at: Optional[int] = None,
                      next_page_token: Optional[str] = None, fields: Optional[List[str]] = None,
                      expand: Optional[List[str]] = None) -> Tuple[Optional[dict], Optional[str]]:
        """Run a JQL search for one page of results.

        Offset paging (start_at) uses POST /search; otherwise POST /search/jql with
        an optional continuation token, passed through verbatim.

        Returns:
            ({issues, total, start_at, max_results, next_page_token}, None) or (None, error)
        """
        if not jql or not jql.strip():
            return None, 'JQL query is empty'

        page_size = max_results or (self.config.get('search') or {}).get('max_results') or 50

        if start_at is not None:
            path = '/search'
            body: Dict[str, Any] = {
                'jql': jql,
                'startAt': start_at,
                'maxResults': page_size,
                'fields': fields or DEFAULT_SEARCH_FIELDS,
            }
            if expand:
                body['expand'] = ','.join(expand)
        else:
            path = '/search/jql'
            body = {
                'jql': jql,
                'maxResults': page_size,
                'fields': fields or DEFAULT_SEARCH_FIELDS,
            }
            if expand:
                body['expand'] = ','.join(expand)
            if next_page_token:
                body['nextPageToken'] = next_page_token

        payload, error = self.request('POST', path, data=body, resource='search')
        if error:
            return None, error.message
        if not isinstance(payload, dict):
            return None, jira_errors.PARSE_MESSAGE

        return {
            'issues': [_flatten_issue(issue) for issue in payload.get('issues') or []],
            'total': payload.get('total'),
            'start_at': payload.get('startAt', start_at),
            'max_results': payload.get('maxResults', page_size),
            'next_page_token': payload.get('nextPageToken'),
        }, None

    def fetch_assigned_issues(self, start_at: int = 0) -> Tuple[Optional[dict], Optional[str]]:
        """Unresolved issues assigned to the authenticated user, offset-paged."""
        assigned = self.config.get('assigned') or {}
        jql = assigned.get('jql') or DEFAULT_ASSIGNED_JQL
        return self.search_issues(jql, max_results=assigned.get('max_results'), start_at=start_at or 0)

    def fetch_issue_summaries(self, issue_keys: List[str]) -> Tuple[Optional[Dict[str, str]], Optional[str]]:
        """Map issue key -> summary for a batch of keys in one search."""
        keys = list(dict.fromkeys(k for k in issue_keys or [] if isinstance(k, str) and k))
        if not keys:
            return {}, None

        result, error = self.search_issues(
            f"issuekey in ({', '.join(keys)})",
            max_results=min(len(keys), MAX_SUMMARY_BATCH),
            fields=DEFAULT_SEARCH_FIELDS,
        )
        if error or result is None:
            return None, error or 'Unable to fetch Jira issue summaries.'
        return {issue['key']: issue['summary'] for issue in result['issues'] if issue.get('key')}, None

    def fetch_jql_autocomplete(self, force_refresh: bool = False) -> Tuple[Optional[dict], Optional[str]]:
        """Field, function and reserved-word names for JQL completion (cached for a day)."""
        use_cache = not cache_disabled() and self.cache is not None
        if use_cache:
            cached = self.cache.get('autocomplete', force_refresh=force_refresh)
            if cached:
                self._debug(f"JQL autocomplete data from cache ({self.cache.age('autocomplete')})")
                return cached, None

        payload, error = self.request('GET', '/jql/autocompletedata', resource='JQL autocomplete data')
        if error:
            return None, error.message
        payload = payload if isinstance(payload, dict) else {}

        data = {
            'fields': _names(payload.get('visibleFieldNames')),
            'functions': _names(payload.get('visibleFunctionNames')),
            'reserved_words': _names(payload.get('jqlReservedWords')),
        }
        if use_cache:
            self.cache.set('autocomplete', data, ttl=AUTOCOMPLETE_TTL)
        return data, None

    def fetch_jql_suggestions(self, field: str, value: str) -> Tuple[Optional[dict], Optional[str]]:
        """Value suggestions for a field given the partially typed value."""
        path = (f"/jql/autocompletedata/suggestions?fieldName={quote(field or '', safe='')}"
                f"&fieldValue={quote(value or '', safe='')}")
        payload, error = self.request('GET', path, resource=f"suggestions for {field}")
        if error:
            return None, error.message
        return payload, None
