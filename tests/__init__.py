"""
sysmcp test suite.

Tests are organized by layer:
    tests/unit/         Unit tests (tmp_path files only)
    tests/integration/  TrustContext and CLI tests against real files
    tests/safety/       Guards against drift in security defaults

Run all tests:
    pytest
"""
