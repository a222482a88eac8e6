"""Shared fixtures: temp company data, fake clock, stub completion client."""
import json
from pathlib import Path

import pytest

from config import TestingConfig
from web_app import create_app

COMPANY_DATA = {
    "name": "Acme Digital",
    "services": ["Web design", "Mobile apps"],
    "contact": {"email": "hola@acme.example", "city": "Málaga"},
}

API_URL = TestingConfig.API_URL


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class CountingReader:
    """Source reader that records how often the company file is read"""

    def __init__(self):
        self.calls = 0

    def __call__(self, path):
        self.calls += 1
        return Path(path).read_text(encoding="utf-8")


class StubClient:
    """Stands in for CompletionClient at the dispatcher boundary"""

    def __init__(self, reply="Acme builds websites and apps."):
        self.reply = reply
        self.calls = []
        self.connection_tests = 0

    def complete(self, message, history):
        self.calls.append((message, list(history)))
        return self.reply

    def test_connection(self):
        self.connection_tests += 1
        return {"success": True, "http_code": 200, "response": "{}", "error": ""}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reader():
    return CountingReader()


@pytest.fixture
def company_file(tmp_path):
    path = tmp_path / "company_data.json"
    path.write_text(json.dumps(COMPANY_DATA), encoding="utf-8")
    return path


@pytest.fixture
def cache_file(tmp_path):
    return tmp_path / "cache" / "company_data.json"


@pytest.fixture
def settings(company_file, cache_file):
    class Settings(TestingConfig):
        COMPANY_DATA_PATH = str(company_file)
        CACHE_PATH = str(cache_file.parent)
        COMPANY_CACHE_FILE = str(cache_file)

    return Settings


@pytest.fixture
def stub():
    return StubClient()


@pytest.fixture
def app(settings, stub):
    return create_app(settings, client=stub)


@pytest.fixture
def test_client(app):
    return app.test_client()
