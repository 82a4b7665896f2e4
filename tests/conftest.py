"""Shared fixtures for voxcap tests."""

import asyncio
import time

import pytest


class MessageCollector:
    """Message sink that records everything an engine posts."""

    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    def of(self, message_type):
        return [m for m in self.messages if isinstance(m, message_type)]

    @property
    def types(self):
        return [type(m).__name__ for m in self.messages]


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def collector():
    return MessageCollector()


@pytest.fixture
def wait_until():
    return _wait_until
