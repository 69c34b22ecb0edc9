"""
Test Suite for School Moodle MCP Server

This package contains the unit tests for the School Moodle MCP server.

Test Structure:
- unit/test_catalog.py: Tool catalog loading and schema validation
- unit/test_client.py: Moodle client against a mock HTTP transport
- unit/test_strategies.py: Per-modname content extraction
- unit/test_resolver.py: Activity reference resolution
- unit/test_registry.py: Tool business logic
- unit/test_dispatcher.py: Validation, routing and envelopes
- unit/test_mcp.py: JSON-RPC protocol handling

Running Tests:
    pytest                          # Run all tests
    pytest -v                       # Verbose output
    pytest tests/unit/test_client.py  # Run specific test file

Test Configuration:
Tests use pytest and pytest-asyncio and are configured in pyproject.toml
with the markers they use.
"""
