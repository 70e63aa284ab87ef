#!/usr/bin/env python3
"""
Tests for the in-memory thread store.
"""

from __future__ import annotations

import pytest

from mcp_chat.exceptions import UnknownThreadError
from mcp_chat.models import Message
from mcp_chat.threads import ThreadStore

SYSTEM_PROMPT = "You are helpful."


def test_create_seeds_system_prompt():
    store = ThreadStore(SYSTEM_PROMPT)
    thread_id = store.create()

    assert store.get(thread_id) == [Message(role="system", content=SYSTEM_PROMPT)]
    assert thread_id in store


def test_ids_are_unique():
    store = ThreadStore(SYSTEM_PROMPT)
    ids = {store.create() for _ in range(100)}
    assert len(ids) == 100
    assert len(store) == 100


def test_clear_truncates_to_system_message():
    store = ThreadStore(SYSTEM_PROMPT)
    thread_id = store.create()
    store.append(thread_id, Message(role="user", content="Hello"))
    store.append(thread_id, Message(role="assistant", content="Hi"))

    store.clear(thread_id)

    assert store.get(thread_id) == [Message(role="system", content=SYSTEM_PROMPT)]


def test_clear_unknown_thread_is_noop():
    store = ThreadStore(SYSTEM_PROMPT)
    store.clear("missing")
    assert "missing" not in store


def test_append_and_get_unknown_thread_raise():
    store = ThreadStore(SYSTEM_PROMPT)
    with pytest.raises(UnknownThreadError):
        store.get("missing")
    with pytest.raises(UnknownThreadError):
        store.append("missing", Message(role="user", content="x"))


def test_threads_are_independent():
    store = ThreadStore(SYSTEM_PROMPT)
    first, second = store.create(), store.create()
    store.append(first, Message(role="user", content="only in first"))

    assert len(store.get(first)) == 2
    assert len(store.get(second)) == 1


def test_get_returns_copy():
    store = ThreadStore(SYSTEM_PROMPT)
    thread_id = store.create()
    snapshot = store.get(thread_id)
    snapshot.append(Message(role="user", content="not stored"))

    assert len(store.get(thread_id)) == 1
