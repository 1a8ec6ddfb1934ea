"""
Core Package

Contains the exchange-independent building blocks of the client:
- config: Pydantic Settings loaded from the environment / .env
- logging: Package-wide logger setup
- errors: ParadexError hierarchy shared by REST, signing and WebSocket code
- schemas: Pydantic models for every REST and WebSocket payload
"""
