"""
seeddb test suite.

This package contains:
- unit/: Unit tests for each module (temporary directories, real SQLite files)
- integration/: End-to-end tests of SeededOpenHelper
- fixtures/: Package resources used by the resource reader tests
"""
