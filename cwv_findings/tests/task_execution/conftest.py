"""Shared test fixtures for task execution, config and signal extraction tests."""
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

CONFIG_ENV_VARS = (
    'AGENT_BATCH_SIZE', 'AGENT_BATCH_DELAY', 'AGENT_MAX_RETRIES', 'AGENT_RETRY_BASE_DELAY',
    'CWV_DEVICE_TYPE', 'DEVICE_TYPE', 'GRAPH_INDEX_PAIRS', 'GRAPH_MAX_CRITICAL_PATHS',
    'VALIDATION_BLOCKING_MODE', 'VALIDATION_ADJUST_MODE', 'VALIDATION_STRICT_MODE',
    'ANTHROPIC_API_KEY', 'CLAUDE_API_KEY', 'CLAUDE_MODEL', 'CLAUDE_MAX_TOKENS', 'CLAUDE_TEMPERATURE',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Config dataclasses read the environment; start every test from defaults."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def psi_payload():
    return {
        'data': {
            'lighthouseResult': {
                'audits': {
                    'largest-contentful-paint': {'numericValue': 4123.4, 'score': 0.2},
                    'total-blocking-time': {'numericValue': 480, 'score': 0.4},
                    'cumulative-layout-shift': {'numericValue': 0.18, 'score': 0.5},
                    'redirects': {'score': 1},
                    'unused-javascript': {'score': 0.45},
                    'render-blocking-resources': {'score': 0},
                    'server-response-time': {'score': None},
                },
            },
        },
    }


@pytest.fixture
def har_payload():
    return {
        'log': {
            'entries': [
                {'request': {'url': 'https://www.example.com/'},
                 'response': {'_transferSize': 20_000, 'content': {'mimeType': 'text/html', 'size': 60_000}}},
                {'request': {'url': 'https://www.example.com/static/app.js'},
                 'response': {'_transferSize': 310_000, 'content': {'mimeType': 'application/javascript'}}},
                {'request': {'url': 'https://cdn.example.com/vendor.js?v=2'},
                 'response': {'bodySize': 150_000, 'content': {'mimeType': 'text/javascript'}}},
                {'request': {'url': 'https://analytics.other.net/tag.js'},
                 'response': {'_transferSize': 40_000, 'content': {'mimeType': 'application/javascript'}}},
                {'request': {'url': 'https://www.example.com/hero.webp'},
                 'response': {'bodySize': -1, 'content': {'mimeType': 'image/webp', 'size': 90_000}}},
            ],
        },
    }


@pytest.fixture
def perf_entries():
    return [
        {'entryType': 'longtask', 'startTime': 800, 'duration': 250},
        {'entryType': 'longtask', 'startTime': 1500, 'duration': 90},
        {'entryType': 'largest-contentful-paint', 'startTime': 2100},
        {'entryType': 'longtask', 'startTime': 3000, 'duration': 400},
    ]


@pytest.fixture
def tool_use_client():
    """Factory for a fake Anthropic client whose messages.create returns one tool_use block."""
    def _build(tool_input, name='report_findings'):
        block = SimpleNamespace(type='tool_use', name=name, input=tool_input)
        client = Mock()
        client.messages.create.return_value = SimpleNamespace(content=[block])
        return client
    return _build
