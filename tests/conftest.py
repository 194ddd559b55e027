"""Shared fixtures for the FPL Companion test suite."""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

import fpl_companion.services as services_module
from fpl_companion.config import UpstreamConfig
from fpl_companion.normalizers import parse_reference_catalog


@pytest.fixture
def make_element():
    """Factory for creating player dicts matching the bootstrap-static shape."""
    def _make(**overrides):
        base = {
            "id": 7,
            "web_name": "Tester",
            "team": 3,
            "element_type": 3,  # MID
        }
        base.update(overrides)
        return base
    return _make


@pytest.fixture
def make_bootstrap(make_element):
    """Factory for a bootstrap-static document. GW2 is current by default."""
    def _make(events=None, teams=None, elements=None):
        if events is None:
            events = [
                {"id": 1, "is_current": False, "finished": True},
                {"id": 2, "is_current": True, "finished": False},
                {"id": 3, "is_current": False, "finished": False},
            ]
        if teams is None:
            teams = [
                {"id": 3, "name": "Arsenal", "short_name": "ARS", "code": 3},
                {"id": 4, "name": "Brentford", "short_name": "BRE", "code": 94},
            ]
        if elements is None:
            elements = [
                make_element(),
                make_element(id=8, web_name="Backline", team=4, element_type=2),
            ]
        return {"events": events, "teams": teams, "elements": elements}
    return _make


@pytest.fixture
def make_catalog(make_bootstrap):
    """Factory for a parsed ReferenceCatalog."""
    def _make(**kwargs):
        return parse_reference_catalog(make_bootstrap(**kwargs))
    return _make


@pytest.fixture
def make_fixture():
    """Factory for creating raw fixture dicts."""
    def _make(**overrides):
        base = {
            "id": 1,
            "event": 2,
            "kickoff_time": "2025-08-16T14:00:00Z",
            "started": False,
            "finished": False,
            "team_h": 3,
            "team_a": 4,
            "team_h_score": None,
            "team_a_score": None,
            "stats": [],
        }
        base.update(overrides)
        return base
    return _make


@pytest.fixture
def upstream_config():
    """Factory for an UpstreamConfig that never waits long."""
    def _make(**overrides):
        base = {
            "api_base": "",
            "league_id": "1391467",
            "timeout": 2.0,
            "standings_retry_attempts": 3,
            "standings_retry_delay": 0.0,
        }
        base.update(overrides)
        return UpstreamConfig(**base)
    return _make


@pytest.fixture
def install_transport():
    """Route the shared HTTP client through an httpx.MockTransport handler."""
    original = services_module.http_client
    installed = []

    def _install(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        services_module.http_client = client
        installed.append(client)
        return client

    yield _install

    for client in installed:
        asyncio.run(client.aclose())
    services_module.http_client = original
