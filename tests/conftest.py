"""Shared fixtures for the bridge test suite."""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import pytest

from vernbridge.core.bridge.models import BridgeDirection, BridgeIntent

GENESIS_ADDRESS = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"
STARKNET_ACCOUNT = "0x049d36570d4e46f48e99674bd3fcc84644ddd6b96f7c741b1562b82f9e004dc7"

# Outcome that makes a scripted signer call never return
HANG = "hang"


class ScriptedSigner:
    """Signer fake that replays scripted outcomes per path.

    Each outcome is a chain reference string, an exception instance to
    raise, or HANG.
    """

    def __init__(self, primary=(), alternate=()):
        self.primary = list(primary)
        self.alternate = list(alternate)
        self.primary_calls: List[Any] = []
        self.alternate_calls: List[Any] = []

    async def submit(self, call):
        self.primary_calls.append(call)
        return await self._next(self.primary)

    async def submit_alternate(self, call):
        self.alternate_calls.append(call)
        return await self._next(self.alternate)

    @staticmethod
    async def _next(script):
        if not script:
            raise AssertionError("signer called more often than scripted")
        outcome = script.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == HANG:
            await asyncio.sleep(3600)
        return outcome


class RecordingPublisher:
    """Publisher fake that records every published event."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, channel: str, event: Dict[str, Any]) -> int:
        self.events.append((channel, event))
        return 1

    def on(self, channel: str) -> List[Dict[str, Any]]:
        return [event for ch, event in self.events if ch == channel]


@pytest.fixture
def make_signer():
    return ScriptedSigner


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def no_sleep():
    """Replacement sleeper that records requested delays."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def deposit_intent():
    return BridgeIntent(
        direction=BridgeDirection.SOURCE_TO_TARGET,
        amount=Decimal("0.01"),
        source_address=GENESIS_ADDRESS,
        destination_address=STARKNET_ACCOUNT,
    )


@pytest.fixture
def withdrawal_intent():
    return BridgeIntent(
        direction=BridgeDirection.TARGET_TO_SOURCE,
        amount=Decimal("0.5"),
        source_address=STARKNET_ACCOUNT,
        destination_address="bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4",
    )
