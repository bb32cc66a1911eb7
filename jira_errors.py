#!/usr/bin/env python3

"""
Jira Errors - Classification of curl and HTTP failures into user-facing messages
"""

import json
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse


CONNECTIVITY = 'connectivity'
AUTH = 'auth'
FORBIDDEN = 'forbidden'
NOT_FOUND = 'not_found'
RATE_LIMITED = 'rate_limited'
SERVER = 'server'
HTTP = 'http'
PARSE = 'parse'
SPAWN = 'spawn'
TRANSPORT = 'transport'
CONFIG = 'config'

PARSE_MESSAGE = 'failed to parse JIRA response'
SPAWN_MESSAGE = 'failed to spawn curl - ensure it is available in PATH'

# curl exit codes that mean the request never reached Jira
_CURL_CONNECTIVITY = {
    6: 'could not resolve host',
    7: 'connection refused',
    28: 'request timed out',
    35: 'TLS handshake failed',
    51: 'TLS handshake failed',
    58: 'TLS handshake failed',
    60: 'TLS handshake failed',
}


@dataclass
class JiraError:
    """A classified failure: category, final message and HTTP status when there was one."""
    category: str
    message: str
    status: Optional[int] = None

    def __str__(self) -> str:
        return self.message


def host_of(url: str) -> str:
    """Hostname of a URL, or the URL itself when it cannot be parsed."""
    return urlparse(url).hostname or url


def classify_curl_failure(exit_code: int, stderr: str, url: str) -> JiraError:
    """Classify a non-zero curl exit (no HTTP status available)."""
    reason = _CURL_CONNECTIVITY.get(exit_code)
    if reason:
        return JiraError(CONNECTIVITY, f"Unable to reach Jira at {host_of(url)}: {reason}")

    detail = (stderr or '').strip()
    if detail:
        return JiraError(TRANSPORT, f"curl exited with {exit_code}: {detail}")
    return JiraError(TRANSPORT, f"curl exited with {exit_code}")


def timeout_error(url: str) -> JiraError:
    """The curl process itself overran the configured timeout."""
    return JiraError(CONNECTIVITY, f"Unable to reach Jira at {host_of(url)}: request timed out")


def error_details(body: str) -> str:
    """Extract errorMessages/errors from a Jira error body, joined by '; '."""
    if not body or not body.strip():
        return ''
    try:
        payload = json.loads(body)
    except ValueError:
        return ''
    if not isinstance(payload, dict):
        return ''

    parts = [str(m) for m in payload.get('errorMessages') or [] if m]
    errors = payload.get('errors')
    if isinstance(errors, dict):
        parts.extend(f"{k}: {v}" for k, v in errors.items())
    return '; '.join(parts)


def status_message(status: int, resource: str = '') -> Optional[JiraError]:
    """Map an HTTP status to its message template, or None for 2xx/3xx."""
    if status < 400:
        return None
    if status == 401:
        return JiraError(AUTH, 'Authentication failed (401): check your API email and token', status)
    if status == 403:
        return JiraError(FORBIDDEN, 'Permission denied (403): your account cannot access this resource', status)
    if status == 404:
        target = resource or 'requested resource'
        return JiraError(NOT_FOUND, f"Not found (404): {target}", status)
    if status == 429:
        return JiraError(RATE_LIMITED, 'Rate limited by Jira (429): wait a moment and try again', status)
    if 500 <= status <= 599:
        return JiraError(SERVER, f"Jira server error ({status}): try again later", status)
    return JiraError(HTTP, f"Jira request failed (HTTP {status})", status)


def classify_http_failure(status: int, body: str = '', resource: str = '') -> Optional[JiraError]:
    """Classify an HTTP response, appending any error details Jira sent back."""
    error = status_message(status, resource)
    if error is None:
        return None
    details = error_details(body)
    if details:
        error.message = f"{error.message}: {details}"
    return error


def issue_not_found(issue_key: str) -> JiraError:
    return JiraError(NOT_FOUND, f"Issue {issue_key} was not found (404)", 404)


def issue_missing_in_project(issue_key: str, project: str) -> JiraError:
    return JiraError(NOT_FOUND, f"Issue {issue_key} does not exist in project {project}.", 404)


def project_not_found(project: str) -> JiraError:
    return JiraError(NOT_FOUND, f"Project {project} was not found (or you lack permission to view it).", 404)


def parse_error() -> JiraError:
    return JiraError(PARSE, PARSE_MESSAGE)


def spawn_error() -> JiraError:
    return JiraError(SPAWN, SPAWN_MESSAGE)


def config_error(message: str) -> JiraError:
    return JiraError(CONFIG, message)
