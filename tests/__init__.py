"""
CRM local store test suite.

This package contains:
- unit/: Unit tests (pure functions, models, atomic file I/O)
- integration/: Integration tests (store, services, HTTP API and CLI on a
  temporary storage root)
"""
