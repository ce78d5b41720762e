"""Pytest fixtures for core tests."""

import pytest


@pytest.fixture
def abc_store():
    """Store holding A, B(A), C(B)."""
    from tests.core.graph_test_helpers import abc_chain, build_store

    return build_store(abc_chain())


@pytest.fixture
def diamond_store():
    """Store holding the A/B/C/D diamond."""
    from tests.core.graph_test_helpers import build_store, diamond

    return build_store(diamond())


@pytest.fixture
def editor():
    """Editor over A, B(A), C(B) with the default policy."""
    from tests.core.graph_test_helpers import abc_chain, build_editor

    return build_editor(abc_chain())


@pytest.fixture
def recorded_events(editor):
    """List filled with every event the editor publishes."""
    events = []
    editor.subscribe(events.append)
    return events


@pytest.fixture
def default_policy():
    from dagedit.config import ValidationPolicy

    return ValidationPolicy()
