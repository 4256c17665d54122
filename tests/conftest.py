"""Shared pytest setup."""

import os

# rolekeeper.config builds its Settings at import time
os.environ.setdefault("DISCORD_TOKEN", "test-token")
