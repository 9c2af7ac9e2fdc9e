import importlib

import pytest

import sentry_tunnel.vars as vars_module

CONFIG_VARIABLES = [
    "TUNNEL_PATH",
    "PORT",
    "HOST",
    "SENTRY_HOST",
    "SENTRY_PROJECT_IDS",
    "TUNNEL_UPSTREAM_TIMEOUT",
]


@pytest.fixture
def reload_vars(monkeypatch):
    for name in CONFIG_VARIABLES:
        monkeypatch.delenv(name, raising=False)

    def _reload():
        return importlib.reload(vars_module)

    yield _reload
    monkeypatch.undo()
    importlib.reload(vars_module)


def test_defaults(reload_vars):
    module = reload_vars()

    assert module.TUNNEL_PATH == "/tunnel"
    assert module.PORT == 8090
    assert module.HOST == "0.0.0.0"
    assert module.SENTRY_HOST == ""
    assert module.SENTRY_PROJECT_IDS is None
    assert module.TUNNEL_UPSTREAM_TIMEOUT == 30.0


def test_empty_values_fall_back_to_defaults(monkeypatch, reload_vars):
    monkeypatch.setenv("TUNNEL_PATH", "")
    monkeypatch.setenv("PORT", "")

    module = reload_vars()

    assert module.TUNNEL_PATH == "/tunnel"
    assert module.PORT == 8090


def test_sentry_project_ids_parsing(monkeypatch, reload_vars):
    monkeypatch.setenv("SENTRY_PROJECT_IDS", "3, 6,,8 ")

    module = reload_vars()

    assert module.SENTRY_PROJECT_IDS == ["3", "6", "8"]


@pytest.mark.parametrize("raw", [",", " , ", " "])
def test_blank_project_ids_still_form_a_list(monkeypatch, reload_vars, raw):
    monkeypatch.setenv("SENTRY_PROJECT_IDS", raw)

    module = reload_vars()

    assert module.SENTRY_PROJECT_IDS == []


def test_explicit_configuration(monkeypatch, reload_vars):
    monkeypatch.setenv("TUNNEL_PATH", "/api/monitoring")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("SENTRY_HOST", "o1.ingest.sentry.io")
    monkeypatch.setenv("TUNNEL_UPSTREAM_TIMEOUT", "2.5")

    module = reload_vars()

    assert module.TUNNEL_PATH == "/api/monitoring"
    assert module.PORT == 9000
    assert module.SENTRY_HOST == "o1.ingest.sentry.io"
    assert module.TUNNEL_UPSTREAM_TIMEOUT == 2.5
