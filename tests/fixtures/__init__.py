"""Test fixture package.

Contains fixtures for:
- SQLite databases created per test
- Stub analysis providers
- API clients bound to the test database
"""
