"""Shared test fixtures for the orchestration app."""

import pytest

from apps.orchestration._tests.factories import make_node, make_orchestration, make_project


@pytest.fixture
def node(db):
    return make_node()


@pytest.fixture
def project(db):
    return make_project()


@pytest.fixture
def orchestration(node, project):
    return make_orchestration(node=node, project=project)


@pytest.fixture
def signal_backend(monkeypatch):
    """Capture emitted signals instead of logging them."""
    from apps.orchestration import signals

    emitted = []

    class RecordingBackend(signals.MonitoringBackend):
        def emit(self, signal_name, tags, value=None, extra=None):
            emitted.append((signal_name, tags, value, extra or {}))

    monkeypatch.setattr(signals, "_backend", RecordingBackend())
    return emitted
