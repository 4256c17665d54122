"""Tests for logging setup."""

import logging

from rolekeeper.logging_config import parse_level, setup_logging


class TestLoggingConfig:
    def test_parse_level(self):
        assert parse_level("debug") == logging.DEBUG
        assert parse_level(" WARNING ") == logging.WARNING
        assert parse_level(None) == logging.INFO
        assert parse_level("loud") == logging.INFO

    def test_setup_caps_noisy_loggers(self):
        setup_logging("DEBUG")
        assert logging.getLogger("rolekeeper").level == logging.DEBUG
        assert logging.getLogger("discord").level == logging.WARNING
        assert logging.getLogger("aiohttp").level == logging.WARNING
