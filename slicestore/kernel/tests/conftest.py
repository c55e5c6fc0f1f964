"""
Kernel test configuration.

FakeRemote stands in for the excluded service layer: every perform() call
parks on a future the test resolves or fails explicitly, so tests control the
order in which operations settle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import pytest
import pytest_asyncio

from slicestore.kernel.dispatcher import Store


@dataclass
class RemoteCall:
    target: Any
    payload: Any
    future: asyncio.Future


class FakeRemote:
    def __init__(self) -> None:
        self.calls: list[RemoteCall] = []

    async def perform(self, target: Any, payload: Any) -> Any:
        future = asyncio.get_running_loop().create_future()
        self.calls.append(RemoteCall(target, payload, future))
        return await future

    def resolve(self, index: int, value: Any) -> None:
        self.calls[index].future.set_result(value)

    def fail(self, index: int, error: BaseException) -> None:
        self.calls[index].future.set_exception(error)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def store(remote):
    """Store with fetchEntity and updateEntity wired to the fake remote."""
    s = Store(
        operations={"fetchEntity": remote.perform, "updateEntity": remote.perform},
        history_limit=50,
    )
    yield s
    await s.aclose()
