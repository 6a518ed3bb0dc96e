# Stockroom Test Suite
#
# This package contains:
# - Service tests per engine component (pytest, in-memory SQLite)
# - Concurrency tests (unittest + threading, temporary file database)
#
# Run with: python -m pytest tests
