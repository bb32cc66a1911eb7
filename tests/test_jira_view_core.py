"""
Tests for jira_view_core controllers.

Controllers get a MagicMock API (see conftest.mock_api) so these tests focus on
state handling: paging tokens, offsets, history recording and navigation.
Threaded behaviour of the suggestion and hover controllers lives in
test_threading.py.
"""

import json
from unittest.mock import patch

import pytest

from jira_history import IssueHistory, SearchHistory
from jira_keys import IssueNavigator
from jira_view_core import AssignedController, IssueController, SearchController


def _page(keys, token=None, total=None, start_at=None, max_results=50):
    return ({
        'issues': [{'key': key, 'summary': f"Summary {key}", 'status': 'To Do', 'fields': {}} for key in keys],
        'total': total,
        'start_at': start_at,
        'max_results': max_results,
        'next_page_token': token,
    }, None)


@pytest.fixture
def issue_history(tmp_path):
    return IssueHistory(tmp_path / 'issue_history.json', 200)


@pytest.fixture
def search_history(tmp_path):
    return SearchHistory(tmp_path / 'search_history.json', 50)


class TestIssueController:

    def test_open_issue_renders_and_records(self, mock_api, config, issue_history):
        controller = IssueController(mock_api, config, issue_history)
        view = controller.open_issue('ABC-123')

        assert view.error is None
        assert view.url == 'https://example.atlassian.net/browse/ABC-123'
        assert view.lines[0].startswith('ABC-123 — Login page throws 500 on submit')
        assert issue_history.entries() == [{'key': 'ABC-123', 'summary': 'Login page throws 500 on submit'}]

    def test_failed_fetch_not_recorded(self, mock_api, config, issue_history):
        mock_api.fetch_issue.return_value = (None, 'Issue ABC-9 was not found (404)')
        view = IssueController(mock_api, config, issue_history).open_issue('ABC-9')

        assert view.error == 'Issue ABC-9 was not found (404)'
        assert view.lines == []
        assert len(issue_history) == 0

    def test_non_object_response_reported(self, api, config, curl_response, issue_history):
        with patch('jira_api.subprocess.run', return_value=curl_response('["x"]')):
            view = IssueController(api, config, issue_history).open_issue('ABC-1')
        assert view.error == 'failed to parse JIRA response'
        assert view.lines == []
        assert len(issue_history) == 0

    def test_blank_key(self, mock_api, config):
        view = IssueController(mock_api, config).open_issue('  ')
        assert view.error
        mock_api.fetch_issue.assert_not_called()

    def test_open_at_builds_navigation(self, mock_api, config):
        text = 'First XYZ-1\nthen ABC-123 and\nfinally XYZ-2\n'
        controller = IssueController(mock_api, config)
        view = controller.open_at(text, 2, 7)

        mock_api.fetch_issue.assert_called_with('ABC-123')
        assert controller.navigator.keys == ['XYZ-1', 'ABC-123', 'XYZ-2']
        assert controller.navigator.index == 1
        assert view.lines[0] == 'Issue 2/3 • prev: XYZ-1 • next: XYZ-2'

    def test_open_at_without_key(self, mock_api, config):
        view = IssueController(mock_api, config).open_at('no keys here', 1, 3)
        assert view.error == 'No Jira issue key under cursor.'
        view = IssueController(mock_api, config).open_at('ABC-1', 5, 1)
        assert view.error == 'No Jira issue key under cursor.'

    def test_step_moves_navigator(self, mock_api, config):
        controller = IssueController(mock_api, config)
        navigator = IssueNavigator(['A-1', 'ABC-123', 'C-3'])
        controller.open_issue('ABC-123', navigator)

        controller.step(1)
        mock_api.fetch_issue.assert_called_with('C-3')
        assert navigator.index == 2
        assert controller.step(1) is None

    def test_step_without_navigation(self, mock_api, config):
        assert IssueController(mock_api, config).step(1) is None

    def test_text_issues_uses_fetched_summaries(self, mock_api, config):
        mock_api.fetch_issue_summaries.return_value = ({'ABC-1': 'Fetched summary'}, None)
        entries, warning = IssueController(mock_api, config).text_issues('ABC-1 here\nsee DEF-2 too\n')

        assert warning is None
        assert entries == [
            {'key': 'ABC-1', 'summary': 'Fetched summary', 'line': 1, 'col': 1},
            {'key': 'DEF-2', 'summary': 'see too', 'line': 2, 'col': 5},
        ]
        mock_api.fetch_issue_summaries.assert_called_once_with(['ABC-1', 'DEF-2'])

    def test_text_issues_falls_back_to_previews(self, mock_api, config):
        mock_api.fetch_issue_summaries.return_value = (None, 'Rate limited by Jira (429): wait a moment and try again')
        entries, warning = IssueController(mock_api, config).text_issues('ABC-1 needs a look')

        assert entries[0]['summary'] == 'needs a look'
        assert 'Rate limited' in warning

    def test_text_without_keys_makes_no_request(self, mock_api, config):
        assert IssueController(mock_api, config).text_issues('nothing') == ([], None)
        mock_api.fetch_issue_summaries.assert_not_called()


class TestSearchController:

    def test_first_page_without_token(self, mock_api, config, search_history):
        mock_api.search_issues.return_value = _page(['TNT-1', 'TNT-2'], token='tok-2')
        controller = SearchController(mock_api, config, search_history)
        page = controller.submit('  project = TNT  ')

        mock_api.search_issues.assert_called_once_with('project = TNT', max_results=50, next_page_token=None)
        assert page.page == 1
        assert page.has_next and not page.has_prev
        assert controller.page_tokens == {1: None, 2: 'tok-2'}
        assert controller.last_query == '  project = TNT  '
        assert search_history.entries() == ['project = TNT']

    def test_next_page_carries_token_verbatim(self, mock_api, config):
        token = 'Ck0KB3N0YXR1cxI/+=='
        mock_api.search_issues.side_effect = [_page(['TNT-1'], token=token), _page(['TNT-2'])]
        controller = SearchController(mock_api, config)
        controller.submit('project = TNT')
        page = controller.next_page()

        assert mock_api.search_issues.call_args.kwargs['next_page_token'] == token
        assert page.page == 2
        assert page.has_prev and not page.has_next
        assert page.start_at == 50

    def test_prev_page_reuses_stored_token(self, mock_api, config):
        mock_api.search_issues.side_effect = [
            _page(['A-1'], token='t2'),
            _page(['A-2'], token='t3'),
            _page(['A-3']),
            _page(['A-2'], token='t3'),
        ]
        controller = SearchController(mock_api, config)
        controller.submit('project = A')
        controller.next_page()
        controller.next_page()
        page = controller.prev_page()

        assert mock_api.search_issues.call_args.kwargs['next_page_token'] == 't2'
        assert page.page == 2
        assert controller.page_tokens == {1: None, 2: 't2', 3: 't3'}

    def test_no_next_page_without_token(self, mock_api, config):
        mock_api.search_issues.return_value = _page(['A-1'])
        controller = SearchController(mock_api, config)
        controller.submit('project = A')
        page = controller.next_page()
        assert page.error == 'No more pages.'
        assert mock_api.search_issues.call_count == 1
        assert controller.prev_page().error == 'No more pages.'

    def test_supplied_start_token(self, mock_api, config):
        mock_api.search_issues.return_value = _page(['A-9'])
        SearchController(mock_api, config).submit('project = A', page_token='resume-here')
        assert mock_api.search_issues.call_args.kwargs['next_page_token'] == 'resume-here'

    def test_start_token_with_page_number(self, mock_api, config):
        mock_api.search_issues.return_value = _page(['A-101'], token='t4')
        controller = SearchController(mock_api, config)
        page = controller.submit('project = A', page_token='t3', page=3)

        assert mock_api.search_issues.call_args.kwargs['next_page_token'] == 't3'
        assert page.page == 3
        assert page.start_at == 100
        assert page.has_next and not page.has_prev
        assert controller.page_tokens == {3: 't3', 4: 't4'}
        assert controller.prev_page().error == 'No more pages.'

    def test_page_number_ignored_without_token(self, mock_api, config):
        mock_api.search_issues.return_value = _page(['A-1'])
        page = SearchController(mock_api, config).submit('project = A', page=3)
        assert page.page == 1
        assert page.start_at == 0

    def test_blank_query_ignored(self, mock_api, config, search_history):
        controller = SearchController(mock_api, config, search_history)
        assert controller.submit('   ') is None
        mock_api.search_issues.assert_not_called()
        assert len(search_history) == 0

    def test_empty_result_message(self, mock_api, config):
        mock_api.search_issues.return_value = _page([])
        page = SearchController(mock_api, config).submit('project = A\n  AND status = Done')
        assert page.issues == []
        assert page.empty_message == 'No issues match JQL: project = A AND status = Done'
        assert page.total == 0

    def test_error_keeps_current_page(self, mock_api, config):
        mock_api.search_issues.side_effect = [_page(['A-1'], token='t2'), (None, 'Jira server error (502): try again later')]
        controller = SearchController(mock_api, config)
        controller.submit('project = A')
        page = controller.next_page()
        assert page.error.startswith('Jira server error (502)')
        assert controller.page == 1

    def test_load_before_submit(self, mock_api, config):
        assert SearchController(mock_api, config).load_page(1).error == 'No JQL query submitted.'

    def test_token_round_trip_through_real_client(self, api, config, curl_response, mock_api_responses):
        """The token from page 1's response is the one sent for page 2."""
        responses = [curl_response(mock_api_responses['search_page_1']),
                     curl_response(mock_api_responses['search_page_2'])]
        controller = SearchController(api, config)
        with patch('jira_api.subprocess.run', side_effect=responses) as run:
            first = controller.submit('project = TNT')
            second = controller.next_page()

        bodies = [json.loads(call.args[0][call.args[0].index('-d') + 1]) for call in run.call_args_list]
        assert 'nextPageToken' not in bodies[0]
        assert bodies[1]['nextPageToken'] == 'token-page-2'
        assert [i['key'] for i in first.issues] == ['TNT-1', 'TNT-2']
        assert [i['key'] for i in second.issues] == ['TNT-3']
        assert not second.has_next


class TestAssignedController:

    def test_full_page_with_more_results(self, mock_api, config):
        controller = AssignedController(mock_api, config)
        page = controller.load(0)

        assert [i['key'] for i in page.issues] == ['ABC-1', 'ABC-2']
        assert page.total == 3
        assert page.has_next and not page.has_prev
        assert page.page == 1

    def test_last_page(self, mock_api, config):
        mock_api.fetch_assigned_issues.return_value = _page(['ABC-3'], total=3, start_at=2, max_results=2)
        page = AssignedController(mock_api, config).load(2)
        assert not page.has_next
        assert page.has_prev
        assert page.page == 2

    def test_full_page_at_total_has_no_next(self, mock_api, config):
        mock_api.fetch_assigned_issues.return_value = _page(['A-1', 'A-2'], total=2, start_at=0, max_results=2)
        assert not AssignedController(mock_api, config).load(0).has_next

    def test_unknown_total(self, mock_api, config):
        mock_api.fetch_assigned_issues.return_value = _page(['A-1', 'A-2'], total=None, start_at=0, max_results=2)
        page = AssignedController(mock_api, config).load(0)
        assert page.has_next
        assert page.total == 2

    def test_next_and_prev_offsets(self, mock_api, config):
        controller = AssignedController(mock_api, config)
        controller.load(0)
        mock_api.fetch_assigned_issues.return_value = _page(['ABC-3'], total=3, start_at=2, max_results=2)
        controller.next_page()
        mock_api.fetch_assigned_issues.assert_called_with(start_at=2)
        assert controller.next_page() is None

        controller.prev_page()
        mock_api.fetch_assigned_issues.assert_called_with(start_at=0)

    def test_error(self, mock_api, config):
        mock_api.fetch_assigned_issues.return_value = (None, 'Authentication failed (401): check your API email and token')
        page = AssignedController(mock_api, config).load(0)
        assert page.error.startswith('Authentication failed')
        assert page.empty_message == 'No unresolved issues assigned to you.'
