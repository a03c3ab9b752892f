"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (cache, symbols, client, services)
  and the HTTP surface with a scripted upstream

Uses pytest with pytest-asyncio for testing async functionality.
"""
