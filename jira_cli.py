#!/usr/bin/env python3

"""
Jira Peek - Command line front-end
Look up issue keys found in files, search with JQL, and inspect JQL as you type it
"""

import argparse
import configparser
import sys
from pathlib import Path
from typing import List, Optional

from jira_api import JiraApi
from jira_config import load_config
from jira_history import load_issue_history, load_search_history
from jira_jql import DEFAULT_HELP, complete_fields, find_value_context, highlight, normalize_jql_input, tokenize
from jira_keys import IssueScanner
from jira_render import issue_list_lines, pagination_footer
from jira_utils import get_terminal_width, open_url, supports_colors
from jira_view_core import (
    AssignedController,
    HoverController,
    IssueController,
    PageResult,
    SearchController,
    SuggestionController,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='jira-peek', description='Peek at Jira issues from the terminal.')
    parser.add_argument('--config', type=Path, help='INI config file (default: ~/.config/jira-peek/config.ini)')
    parser.add_argument('-c', '--color', action='store_true', help='Force enable colors (auto-detects by default)')
    parser.add_argument('--no-color', action='store_true', help='Force disable colors')
    parser.add_argument('--debug', action='store_true', help='Print debug messages to stderr')
    parser.add_argument('-w', '--width', type=int, help='Output width in characters (default: auto-detect)')

    commands = parser.add_subparsers(dest='command', metavar='COMMAND')
    commands.required = True

    issue = commands.add_parser('issue', help='Show one issue')
    issue.add_argument('key', help='Issue key, e.g. ABC-123')
    issue.add_argument('--open', action='store_true', help='Also open the issue in a browser')

    at = commands.add_parser('at', help='Show the issue under a position in a file')
    at.add_argument('file', type=Path)
    at.add_argument('line', type=int, help='1-based line')
    at.add_argument('col', type=int, help='1-based column')

    text = commands.add_parser('buffer', help='List the issue keys found in a file')
    text.add_argument('file', type=Path)

    keys = commands.add_parser('keys', help='List every issue key occurrence in a file (line:start-end)')
    keys.add_argument('file', type=Path)

    assigned = commands.add_parser('assigned', help='List unresolved issues assigned to you')
    assigned.add_argument('--start', type=int, default=0, help='0-based offset (default: %(default)s)')

    search = commands.add_parser('search', help='Run a JQL search')
    search.add_argument('jql', nargs='+', help='JQL query, or a bare issue key')
    search.add_argument('--page-token', help='Continuation token from a previous page')
    search.add_argument('--page', type=int, help='Page number the --page-token leads to (omit to skip the page footer)')

    history = commands.add_parser('history', help='List recently viewed issues')
    history.add_argument('--clear', action='store_true', help='Forget all viewed issues')
    searches = commands.add_parser('searches', help='List recent JQL searches')
    searches.add_argument('--clear', action='store_true', help='Forget all searches')

    jql = commands.add_parser('jql', help='Highlight JQL and show completion context')
    jql.add_argument('jql', nargs='*', help='JQL text (omit to print an example)')
    jql.add_argument('--col', type=int, help='1-based cursor column (default: end of line)')
    jql.add_argument('--refresh', action='store_true', help='Refetch JQL autocomplete data instead of using the cache')

    suggest = commands.add_parser('suggest', help='Value suggestions for a JQL field')
    suggest.add_argument('field')
    suggest.add_argument('value', nargs='?', default='')

    hover = commands.add_parser('hover', help='Statusline text for the issue under a position in a file')
    hover.add_argument('file', type=Path)
    hover.add_argument('line', type=int, help='1-based line')
    hover.add_argument('col', type=int, help='1-based column')

    return parser


def determine_colors(args) -> bool:
    """Determine if colors should be used based on arguments and environment."""
    if getattr(args, 'color', False):
        return True
    elif getattr(args, 'no_color', False):
        return False
    else:
        return supports_colors() and sys.stdout.isatty()


def _print_lines(lines: List[str]) -> None:
    for line in lines:
        print(line)


def _error(message: str) -> int:
    print(f"❌ {message}", file=sys.stderr)
    return 1


def _read_text(path: Path) -> str:
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()


def _print_page(page: PageResult, title: str, width: int, subtitle: Optional[str] = None,
                with_footer: bool = True) -> int:
    if page.error:
        return _error(page.error)
    footer = None
    if with_footer:
        footer = pagination_footer(page.total, page.start_at, len(page.issues), page.page_size, page.page)
    _print_lines(issue_list_lines(page.issues, title, width, subtitle=subtitle,
                                  empty_message=page.empty_message, footer=footer))
    return 0


def cmd_issue(args, config, api, width) -> int:
    controller = IssueController(api, config, load_issue_history(config))
    view = controller.open_issue(args.key.upper(), width=width)
    if view.error:
        return _error(view.error)
    _print_lines(view.lines)
    if args.open and view.url and not open_url(view.url):
        print(f"⚠️  Could not open browser for {view.url}", file=sys.stderr)
    return 0


def cmd_at(args, config, api, width) -> int:
    controller = IssueController(api, config, load_issue_history(config))
    view = controller.open_at(_read_text(args.file), args.line, args.col, width=width)
    if view.error:
        return _error(view.error)
    _print_lines(view.lines)
    return 0


def cmd_buffer(args, config, api, width) -> int:
    controller = IssueController(api, config)
    entries, warning = controller.text_issues(_read_text(args.file))
    if warning:
        print(f"⚠️  {warning}", file=sys.stderr)
    _print_lines(issue_list_lines(entries, f"Issues in {args.file.name}", width,
                                  subtitle=f"{len(entries)} matches in file",
                                  empty_message='No Jira issue keys found in this file.'))
    return 0


def cmd_keys(args, config, api, width) -> int:
    for span in IssueScanner(config).scan_spans(_read_text(args.file)):
        print(f"{span.line}:{span.col}-{span.end}  {span.key}")
    return 0


def cmd_assigned(args, config, api, width) -> int:
    controller = AssignedController(api, config)
    return _print_page(controller.load(args.start), 'Assigned Issues', width)


def cmd_search(args, config, api, width) -> int:
    controller = SearchController(api, config, load_search_history(config))
    page = controller.submit(normalize_jql_input(' '.join(args.jql)), page_token=args.page_token,
                             page=args.page or 1)
    if page is None:
        return _error('JQL query is empty')
    # Position of a token page is only known when --page says so
    page_known = not args.page_token or args.page is not None
    status = _print_page(page, 'JQL Search', width, with_footer=page_known)
    next_token = controller.page_tokens.get(page.page + 1)
    if status == 0 and next_token:
        hint = f" --page {page.page + 1}" if page_known else ''
        print(f"Next page: --page-token {next_token}{hint}")
    return status


def cmd_history(args, config, api, width) -> int:
    store = load_issue_history(config)
    if args.clear:
        store.clear()
        print('✓ Viewed-issue history cleared')
        return 0
    entries = store.entries()
    _print_lines(issue_list_lines(entries, 'Viewed Issues', width,
                                  subtitle=f"{len(entries)} unique issues",
                                  empty_message='No issues viewed yet.'))
    return 0


def cmd_searches(args, config, api, width) -> int:
    store = load_search_history(config)
    if args.clear:
        store.clear()
        print('✓ Search history cleared')
        return 0
    entries = store.entries()
    if not entries:
        print('No searches yet.')
    for query in entries:
        print(query)
    return 0


def cmd_jql(args, config, api, width) -> int:
    line = ' '.join(args.jql)
    if not line:
        print(DEFAULT_HELP)
        return 0

    fields = []
    if api.base_url:
        data, error = api.fetch_jql_autocomplete(force_refresh=args.refresh)
        if error:
            print(f"⚠️  JQL autocomplete data unavailable: {error}", file=sys.stderr)
        else:
            fields = data.get('fields') or []

    print(highlight(line, fields, use_colors=args.use_colors))
    for token in tokenize(line, fields):
        print(f"  {token.start:>3}-{token.end:<3} {token.kind:<8} {token.text}")

    col = args.col or len(line)
    field_name, prefix = find_value_context(line, col)
    if field_name:
        print(f"Value context: {field_name} (prefix: '{prefix}')")
    else:
        matches = complete_fields(line[:col], fields)
        if matches:
            print(f"Field completions: {', '.join(matches)}")
    return 0


def cmd_suggest(args, config, api, width) -> int:
    controller = SuggestionController(api, (config.get('search') or {}).get('debounce_ms', 200))
    items, error = controller.suggest_now(args.field, args.value)
    if error:
        return _error(error)
    if not items:
        print('No suggestions.')
    _print_lines(items)
    return 0


def cmd_hover(args, config, api, width) -> int:
    lines = _read_text(args.file).splitlines()
    issue_key = None
    if 1 <= args.line <= len(lines):
        issue_key = IssueScanner(config).find_issue_at(lines[args.line - 1], args.col - 1)
    if not issue_key:
        return _error('No Jira issue key under cursor.')

    controller = HoverController(api, config, load_issue_history(config), width=width)
    controller.update(issue_key)
    controller.wait(timeout=(config.get('api') or {}).get('timeout') or 30)
    print(controller.message)
    return 0


COMMANDS = {
    'issue': cmd_issue,
    'at': cmd_at,
    'buffer': cmd_buffer,
    'keys': cmd_keys,
    'assigned': cmd_assigned,
    'search': cmd_search,
    'history': cmd_history,
    'searches': cmd_searches,
    'jql': cmd_jql,
    'suggest': cmd_suggest,
    'hover': cmd_hover,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.use_colors = determine_colors(args)

    overrides = {'debug': True} if args.debug else None
    try:
        config = load_config(args.config, overrides)
    except FileNotFoundError as e:
        return _error(str(e))
    except (configparser.Error, ValueError, OSError) as e:
        return _error(f"Invalid config: {e}")

    width = args.width or get_terminal_width()
    api = JiraApi(config)
    try:
        return COMMANDS[args.command](args, config, api, width)
    except OSError as e:
        return _error(str(e))
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
