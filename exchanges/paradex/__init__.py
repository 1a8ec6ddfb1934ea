"""
Paradex Exchange Connector

Paradex is a StarkNet based derivatives exchange. This package provides:
- ParadexAPIClient: async REST client (public data, JWT auth, signed orders)
- WebsocketManager: multiplexed JSON-RPC websocket subscriptions
- MessageSigner: STARK typed-data hashing and signatures
- Channel and SubscriptionSpec types describing websocket topics
"""

from exchanges.paradex.api_client import ParadexAPIClient
from exchanges.paradex.signing import MessageSigner
from exchanges.paradex.urls import Environment
from exchanges.paradex.ws_client import WebsocketManager
from exchanges.paradex.ws_types import Identifier

__all__ = [
    "Environment",
    "Identifier",
    "MessageSigner",
    "ParadexAPIClient",
    "WebsocketManager",
]
