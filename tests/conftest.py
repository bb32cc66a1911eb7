"""
Shared test fixtures for jira-peek tests.

Provides an isolated environment, canned API responses, and mocked API objects
for controller testing.
"""

import pytest
import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock


BASE_URL = 'https://example.atlassian.net'


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """
    Keep every test away from the real home directory and credentials.

    Config, data and cache paths all point into tmp_path, and the metadata
    cache is disabled unless a test turns it back on.
    """
    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.setenv('HOME', str(home))
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path / 'config'))
    monkeypatch.setenv('XDG_DATA_HOME', str(tmp_path / 'data'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(tmp_path / 'cache'))
    monkeypatch.setenv('JIRA_NO_CACHE', 'true')
    for name in ('JIRA_BASE_URL', 'JIRA_API_EMAIL', 'JIRA_API_TOKEN', 'JIRA_API_KEY', 'JIRA_PEEK_CONFIG'):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def fixture_dir():
    """Path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def mock_api_responses(fixture_dir):
    """
    Load mock API responses from JSON.

    Returns:
        dict: Mock responses with keys:
            - issue: Full issue payload (rendered fields, changelog, comments)
            - issue_summary: Issue fetched with summary fields only
            - search_page_1 / search_page_2: Token-paged JQL search pages
            - assigned_page: Offset-paged search page
            - autocomplete: JQL autocomplete data
            - suggestions: JQL value suggestions
    """
    with open(fixture_dir / "mock_api_responses.json") as f:
        return json.load(f)


@pytest.fixture
def config():
    """Effective configuration with test credentials."""
    from jira_config import load_config

    return load_config(overrides={
        'api': {'base_url': BASE_URL, 'email': 'dev@example.com', 'token': 'secret-token'},
    })


@pytest.fixture
def api(config):
    """Real JiraApi pointed at the test base URL (patch subprocess.run to drive it)."""
    from jira_api import JiraApi

    return JiraApi(config)


@pytest.fixture
def curl_response():
    """
    Build the CompletedProcess curl would return.

    The body is followed by a newline and the HTTP status, matching the
    `-w '\\n%{http_code}'` write-out.
    """
    def make(body='', status=200, returncode=0, stderr=''):
        if not isinstance(body, str):
            body = json.dumps(body)
        stdout = f"{body}\n{status}" if returncode == 0 else ''
        return subprocess.CompletedProcess(args=['curl'], returncode=returncode, stdout=stdout, stderr=stderr)

    return make


@pytest.fixture
def mock_api(mock_api_responses):
    """
    Mock JiraApi that returns canned (result, error) tuples.

    Returns:
        MagicMock: Mocked JiraApi with configured responses
    """
    from jira_api import _flatten_issue

    api = MagicMock()
    api.base_url = BASE_URL
    api.fetch_issue.return_value = (mock_api_responses['issue'], None)
    api.fetch_issue_summary.return_value = ({
        'key': 'ABC-123',
        'summary': 'Login page throws 500 on submit',
        'status': 'In Progress',
        'resolution': '',
        'assignee': 'Dana Reyes',
        'reporter': 'Sam Okafor',
    }, None)
    api.fetch_issue_summaries.return_value = ({}, None)
    api.fetch_jql_suggestions.return_value = (mock_api_responses['suggestions'], None)

    page = mock_api_responses['assigned_page']
    api.fetch_assigned_issues.return_value = ({
        'issues': [_flatten_issue(issue) for issue in page['issues']],
        'total': page['total'],
        'start_at': page['startAt'],
        'max_results': page['maxResults'],
        'next_page_token': None,
    }, None)
    return api


@pytest.fixture
def data_dir(isolated_env):
    """Directory the history files are written to."""
    return isolated_env / 'data' / 'jira-peek'


@pytest.fixture
def thread_error_collector():
    """
    Collect errors from background threads.

    Usage:
        def test_something(thread_error_collector):
            collect_error, errors = thread_error_collector

            def background_work():
                try:
                    # do work
                except Exception as e:
                    collect_error(e)

            # If any errors collected, test fails at teardown

    Returns:
        tuple: (collect_function, errors_list)
    """
    errors = []

    def collect(error):
        errors.append(error)

    yield collect, errors

    # Assert no errors collected during test
    if errors:
        pytest.fail(f"Background thread errors: {errors}")


# Mark configurations for pytest
def pytest_configure(config):
    """Configure custom pytest marks."""
    config.addinivalue_line(
        "markers", "stress: mark test as stress test (deselect with '-m \"not stress\"')"
    )
    config.addinivalue_line(
        "markers", "threading: mark test as threading/concurrency test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as end-to-end CLI test"
    )
