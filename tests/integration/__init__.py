"""
Integration tests for accessmigrate.

These tests need a real PostgreSQL instance, provisioned through
testcontainers. They are skipped automatically when testcontainers or
Docker is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
