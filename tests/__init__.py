"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (schemas, signing, websocket manager, REST client)

Uses pytest with pytest-asyncio for testing async functionality.
No test opens a network connection; sockets and HTTP sessions are mocked.
"""
