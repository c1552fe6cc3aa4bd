"""BridgeContext — the process-wide state, owned in one place.

The router is the only writer of state and credentials; the command surface
reads state and sends through the registry.
"""

from __future__ import annotations

from dataclasses import dataclass

from sidebot_bridge.bridge.registry import ConnectionRegistry
from sidebot_bridge.bridge.state import BridgeState
from sidebot_bridge.credentials import CredentialStore


@dataclass
class BridgeContext:
    state: BridgeState
    registry: ConnectionRegistry
    credentials: CredentialStore

    @classmethod
    def create(cls, credentials: CredentialStore) -> "BridgeContext":
        state = BridgeState()
        registry = ConnectionRegistry(on_change=state.mark_connected)
        return cls(state=state, registry=registry, credentials=credentials)
