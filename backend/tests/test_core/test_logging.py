"""
Tests for request and actor correlation in structured logs.
"""

import logging

import pytest

from brokerage.core.logging import (
    add_actor_id,
    add_request_id,
    clear_context,
    get_actor_id,
    get_request_id,
    set_actor_id,
    set_request_id,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


def test_actor_id_added_to_events():
    set_actor_id("3f1c0e6e-0000-4000-8000-000000000001")

    event = add_actor_id(logging.getLogger("test"), "info", {"event": "Order created"})

    assert get_actor_id() == "3f1c0e6e-0000-4000-8000-000000000001"
    assert event["actor_id"] == "3f1c0e6e-0000-4000-8000-000000000001"


def test_anonymous_events_have_no_actor():
    event = add_actor_id(logging.getLogger("test"), "info", {"event": "Health check"})

    assert get_actor_id() is None
    assert "actor_id" not in event


def test_request_id_generated_and_cleared():
    request_id = set_request_id()

    event = add_request_id(logging.getLogger("test"), "info", {"event": "Request started"})
    assert event["request_id"] == request_id == get_request_id()

    clear_context()
    assert get_request_id() == ""
