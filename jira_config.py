#!/usr/bin/env python3

"""
Jira Peek Config - Defaults, config file and environment handling
Merges built-in defaults with an optional INI file and JIRA_* environment variables
"""

import configparser
import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_ASSIGNED_JQL = 'assignee = currentUser() AND resolution = Unresolved ORDER BY updated DESC'

DEFAULT_CONFIG: Dict[str, Any] = {
    'debug': False,
    'issue_pattern': r'[A-Z]+-\d+',
    'max_lines': -1,
    'ignored_projects': ['SEV'],
    'statusline': {
        'enabled': True,
        'max_length': 80,
        'loading_text': 'Loading...',
        'error_text': 'Unable to load issue',
        'empty_text': 'No summary',
    },
    'assigned': {
        'max_results': 50,
        'jql': DEFAULT_ASSIGNED_JQL,
    },
    'search': {
        'max_results': 50,
        'history_size': 50,
        'debounce_ms': 200,
    },
    'history': {
        'history_size': 200,
    },
    'buffer': {
        'max_summaries': 200,
    },
    'issue': {
        'sidebar_width': 34,
        'max_changes': 30,
        'details_fields': [
            'key',
            'status',
            'resolution',
            'priority',
            'severity',
            'assignee',
            'reporter',
            'created',
            'updated',
            'due',
            'fix_versions',
            'affects_versions',
            'open_duration',
            'comments',
            'changes',
            'assignees',
            'labels',
        ],
    },
    'api': {
        'base_url': '',
        'email': '',
        'token': '',
        'timeout': 30,
        'check_project_on_404': True,
    },
}

# Options read from the INI file that must be coerced away from strings
_INT_OPTIONS = {'max_lines', 'max_length', 'max_results', 'history_size', 'debounce_ms', 'sidebar_width',
                'max_summaries', 'max_changes', 'timeout'}
_BOOL_OPTIONS = {'debug', 'enabled', 'check_project_on_404'}
_LIST_OPTIONS = {'ignored_projects', 'details_fields'}


def deep_merge(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of base with overrides merged in (nested dicts merged, everything else replaced)."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_config_path() -> Path:
    """Location of the user config file, honouring $JIRA_PEEK_CONFIG and $XDG_CONFIG_HOME."""
    explicit = os.environ.get('JIRA_PEEK_CONFIG')
    if explicit:
        return Path(explicit).expanduser()
    config_home = os.environ.get('XDG_CONFIG_HOME') or str(Path.home() / '.config')
    return Path(config_home) / 'jira-peek' / 'config.ini'


def data_dir() -> Path:
    """Directory holding the history files."""
    data_home = os.environ.get('XDG_DATA_HOME') or str(Path.home() / '.local' / 'share')
    return Path(data_home) / 'jira-peek'


def cache_dir() -> Path:
    """Directory holding the metadata cache file."""
    cache_home = os.environ.get('XDG_CACHE_HOME') or str(Path.home() / '.cache')
    return Path(cache_home) / 'jira-peek'


def _coerce(option: str, raw: str, parser: configparser.ConfigParser, section: str) -> Any:
    if option in _BOOL_OPTIONS:
        return parser.getboolean(section, option)
    if option in _INT_OPTIONS:
        return parser.getint(section, option)
    if option in _LIST_OPTIONS:
        return [item.strip() for item in raw.split(',') if item.strip()]
    return raw


def load_config_file(config_file: Path) -> Dict[str, Any]:
    """Read an INI config file into the nested override structure.

    Top-level options go in a [general] section; every other section maps to
    the nested table of the same name (e.g. [api], [search], [issue]).

    Raises:
        FileNotFoundError: if the file does not exist
    """
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_file)

    overrides: Dict[str, Any] = {}
    for section in parser.sections():
        values = {option: _coerce(option, parser.get(section, option), parser, section)
                  for option in parser.options(section)}
        if section == 'general':
            overrides.update(values)
        else:
            overrides.setdefault(section, {}).update(values)
    return overrides


def env_overrides() -> Dict[str, Any]:
    """Credentials taken from the environment (token falls back to $JIRA_API_KEY)."""
    api = {}
    if os.environ.get('JIRA_BASE_URL'):
        api['base_url'] = os.environ['JIRA_BASE_URL']
    if os.environ.get('JIRA_API_EMAIL'):
        api['email'] = os.environ['JIRA_API_EMAIL']
    token = os.environ.get('JIRA_API_TOKEN') or os.environ.get('JIRA_API_KEY')
    if token:
        api['token'] = token
    return {'api': api} if api else {}


def load_config(config_file: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the effective configuration.

    Precedence (lowest to highest): defaults, environment, config file, explicit overrides.
    An explicitly passed config_file must exist; the default location is optional.
    """
    config = deep_merge(DEFAULT_CONFIG, env_overrides())

    if config_file is not None:
        config = deep_merge(config, load_config_file(Path(config_file)))
    else:
        path = default_config_path()
        if path.exists():
            config = deep_merge(config, load_config_file(path))

    config = deep_merge(config, overrides)
    config['_ignored_project_map'] = {p.upper() for p in config.get('ignored_projects') or [] if p}
    return config


def clamp_limit(value: Any) -> int:
    """Turn a configured size into a non-negative integer."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, limit)


def cache_disabled() -> bool:
    """Whether $JIRA_NO_CACHE asks to bypass the metadata cache."""
    return os.environ.get('JIRA_NO_CACHE', 'false').lower() == 'true'
