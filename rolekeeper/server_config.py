# server_config.py – Per-guild badge → role mapping, stored as one JSON file per guild

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

from rolekeeper.analyzer.role_definition import BadgeDefinition, RoleDefinition, load_definition_file
from rolekeeper.errors import ConfigError

log = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    badge_roles: Dict[str, int] = Field(default_factory=dict)
    dry_run: bool = False

    @staticmethod
    def path(base_dir: Path, server_id: int) -> Path:
        return Path(base_dir) / f"{server_id}.json5"

    @classmethod
    def read(cls, base_dir: Path, server_id: int) -> Optional["ServerConfig"]:
        path = cls.path(base_dir, server_id)
        if not path.exists():
            return None
        try:
            return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except ValueError as e:  # includes pydantic ValidationError
            raise ConfigError(f"Invalid server config {path}: {e}") from e

    def write(self, base_dir: Path, server_id: int) -> None:
        path = self.path(base_dir, server_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        log.info("Wrote server config for %s", server_id)

    def valid_badges(self, definition: RoleDefinition) -> Dict[BadgeDefinition, int]:
        """Badges of ``definition`` that have a role configured on this server."""
        return {
            badge: self.badge_roles[badge.name]
            for badge in definition.badges
            if badge.name in self.badge_roles
        }


def definition_path(base_dir: Path, server_id: int) -> Path:
    return Path(base_dir) / f"{server_id}.json5"


def read_server_definition(base_dir: Path, server_id: int) -> Optional[RoleDefinition]:
    """The definition file uploaded for a guild, or None if it has none."""
    path = definition_path(base_dir, server_id)
    if not path.exists():
        return None
    return load_definition_file(path)


def write_server_definition(base_dir: Path, server_id: int, content: bytes) -> None:
    path = definition_path(base_dir, server_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
