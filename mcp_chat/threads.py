"""In-memory conversation threads, each seeded with the system prompt."""

from __future__ import annotations

import uuid

from mcp_chat.exceptions import UnknownThreadError
from mcp_chat.models import Message


class ThreadStore:
    """
    Owns independent message histories keyed by an opaque id.

    Every thread starts as ``[system message]`` and never becomes empty.
    State is only mutated through operations naming the thread's id.
    """

    def __init__(self, system_prompt: str) -> None:
        self.system_prompt = system_prompt
        self._threads: dict[str, list[Message]] = {}

    def _seed(self) -> list[Message]:
        return [Message(role="system", content=self.system_prompt)]

    def create(self) -> str:
        thread_id = str(uuid.uuid4())
        self._threads[thread_id] = self._seed()
        return thread_id

    def clear(self, thread_id: str) -> None:
        """Reset a thread to its system message; unknown ids are ignored."""
        if thread_id in self._threads:
            self._threads[thread_id] = self._seed()

    def append(self, thread_id: str, message: Message) -> None:
        self._thread(thread_id).append(message)

    def get(self, thread_id: str) -> list[Message]:
        """Return a shallow copy of the thread's messages."""
        return list(self._thread(thread_id))

    def _thread(self, thread_id: str) -> list[Message]:
        try:
            return self._threads[thread_id]
        except KeyError:
            raise UnknownThreadError(thread_id) from None

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._threads

    def __len__(self) -> int:
        return len(self._threads)
