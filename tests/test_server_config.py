"""Tests for per-guild configuration files."""

import pytest

from rolekeeper.analyzer.role_definition import load_definition
from rolekeeper.errors import ConfigError
from rolekeeper.server_config import (
    ServerConfig, definition_path, read_server_definition, write_server_definition,
)

GUILD = 4242
DEFINITION = b'{ badges: [{ name: "CM", requirements: [{ type: "points", leaderboard: "Coop", points: 1 }] }] }'


class TestServerConfig:
    def test_missing_file(self, tmp_path):
        assert ServerConfig.read(tmp_path, GUILD) is None

    def test_write_then_read(self, tmp_path):
        ServerConfig(badge_roles={"CM": 111}, dry_run=True).write(tmp_path / "configs", GUILD)

        config = ServerConfig.read(tmp_path / "configs", GUILD)
        assert config.badge_roles == {"CM": 111}
        assert config.dry_run is True

    def test_invalid_file(self, tmp_path):
        ServerConfig.path(tmp_path, GUILD).write_text("{ not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            ServerConfig.read(tmp_path, GUILD)

    def test_wrong_shape(self, tmp_path):
        ServerConfig.path(tmp_path, GUILD).write_text('{"badge_roles": {"CM": "abc"}}', encoding="utf-8")
        with pytest.raises(ConfigError):
            ServerConfig.read(tmp_path, GUILD)

    def test_valid_badges_skips_unmapped(self):
        definition = load_definition(
            '{ badges: [{ name: "CM", requirements: [] }, { name: "Other", requirements: [] }] }')
        config = ServerConfig(badge_roles={"CM": 111, "Gone": 222})

        assert config.valid_badges(definition) == {definition.badge("CM"): 111}


class TestServerDefinition:
    def test_missing(self, tmp_path):
        assert read_server_definition(tmp_path, GUILD) is None

    def test_write_then_read(self, tmp_path):
        write_server_definition(tmp_path / "defs", GUILD, DEFINITION)

        assert definition_path(tmp_path / "defs", GUILD).read_bytes() == DEFINITION
        assert read_server_definition(tmp_path / "defs", GUILD).badge("CM") is not None
