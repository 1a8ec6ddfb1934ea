"""
Paradex Environments

Each environment exposes a REST base URL and a WebSocket URL.

Usage:
    from exchanges.paradex.urls import Environment

    Environment.TESTNET.rest       # "https://api.testnet.paradex.trade"
    Environment.PRODUCTION.websocket
"""

from enum import Enum


class Environment(Enum):
    PRODUCTION = ("https://api.prod.paradex.trade", "wss://ws.api.prod.paradex.trade/v1")
    TESTNET = ("https://api.testnet.paradex.trade", "wss://ws.api.testnet.paradex.trade/v1")

    @property
    def rest(self) -> str:
        return self.value[0]

    @property
    def websocket(self) -> str:
        return self.value[1]

    @classmethod
    def from_name(cls, name: str) -> "Environment":
        """
        Resolve a settings value ("testnet", "production", "prod") to an environment.

        Raises:
            ValueError: If the name is unknown
        """
        normalized = name.strip().lower()
        if normalized in ("production", "prod", "mainnet"):
            return cls.PRODUCTION
        if normalized == "testnet":
            return cls.TESTNET
        raise ValueError(f"Unknown Paradex environment: '{name}'")
