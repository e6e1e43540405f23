"""Tests for logging context propagation."""

import asyncio

import pytest

from autoreply.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop_fields():
    token = push_log_context(item_id="evt_1", resource_id="post-1")
    assert get_log_context() == {"item_id": "evt_1", "resource_id": "post-1"}
    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_context():
    """Nested pushes merge and pop back in reverse order."""
    token1 = push_log_context(item_id="evt_1")
    token2 = push_log_context(attempt=2)
    assert get_log_context() == {"item_id": "evt_1", "attempt": 2}

    pop_log_context(token2)
    assert get_log_context() == {"item_id": "evt_1"}

    pop_log_context(token1)
    assert get_log_context() == {}


def test_context_override():
    token1 = push_log_context(attempt=1)
    token2 = push_log_context(attempt=2)
    assert get_log_context() == {"attempt": 2}

    pop_log_context(token2)
    assert get_log_context() == {"attempt": 1}
    pop_log_context(token1)


def test_get_log_context_returns_copy():
    """Mutating the returned dict does not change the active context."""
    token = push_log_context(item_id="evt_1")
    context = get_log_context()
    context["item_id"] = "changed"

    assert get_log_context() == {"item_id": "evt_1"}
    pop_log_context(token)


def test_context_manager():
    with log_context(item_id="evt_1"):
        assert get_log_context() == {"item_id": "evt_1"}
        with log_context(resource_id="post-1"):
            assert get_log_context() == {"item_id": "evt_1", "resource_id": "post-1"}
        assert get_log_context() == {"item_id": "evt_1"}

    assert get_log_context() == {}


def test_context_manager_restores_on_exception():
    with pytest.raises(ValueError):
        with log_context(item_id="evt_1"):
            raise ValueError("boom")

    assert get_log_context() == {}


def test_async_context_manager():
    async def scenario():
        async with log_context(item_id="evt_1"):
            assert get_log_context() == {"item_id": "evt_1"}
        return get_log_context()

    assert asyncio.run(scenario()) == {}


def test_context_is_isolated_between_tasks():
    """Fields pushed in one task are not visible in a sibling task."""

    async def worker(item_id, seen):
        async with log_context(item_id=item_id):
            await asyncio.sleep(0.01)
            seen[item_id] = get_log_context()["item_id"]

    async def scenario():
        seen = {}
        await asyncio.gather(worker("evt_a", seen), worker("evt_b", seen))
        return seen

    assert asyncio.run(scenario()) == {"evt_a": "evt_a", "evt_b": "evt_b"}
