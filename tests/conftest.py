"""Pytest configuration and fixtures."""


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: runs over millions of records")
