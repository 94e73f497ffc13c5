"""Configuration management for pyovercast.

Values come from environment variables first and from the config file
(``~/.config/pyovercast/config``, one ``KEY=VALUE`` per line) second.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .tree import UNLIMITED_DEPTH

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://app.drime.cloud/api/v1"


class Config:
    """Configuration manager."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file
                (default: ~/.config/pyovercast)
        """
        self.config_dir = config_dir or Path.home() / ".config" / "pyovercast"
        self.config_file = self.config_dir / "config"
        self._values = self._load()

    def _load(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values
        try:
            lines = self.config_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Can't read {self.config_file}: {e}")
            return values

        for line in lines:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
        return values

    def _get(self, key: str) -> Optional[str]:
        return os.environ.get(key) or self._values.get(key)

    def _save(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value
        self.config_dir.mkdir(parents=True, exist_ok=True)
        content = "".join(f"{k}={v}\n" for k, v in sorted(self._values.items()))
        self.config_file.write_text(content, encoding="utf-8")
        # The file holds the API key
        self.config_file.chmod(0o600)

    @property
    def api_key(self) -> Optional[str]:
        return self._get("DRIME_API_KEY")

    @property
    def api_url(self) -> str:
        return self._get("DRIME_API_URL") or DEFAULT_API_URL

    def save_api_key(self, api_key: str) -> None:
        """Store the API key in the config file."""
        self._save("DRIME_API_KEY", api_key)

    def get_default_workspace(self) -> Optional[int]:
        value = self._get("DRIME_WORKSPACE")
        try:
            return int(value) if value else None
        except ValueError:
            logger.warning(f"Ignoring invalid DRIME_WORKSPACE value: {value!r}")
            return None

    def save_default_workspace(self, workspace_id: Optional[int]) -> None:
        self._save("DRIME_WORKSPACE", str(workspace_id) if workspace_id else None)

    def get_local_root(self) -> Path:
        """Local directory transfers start from (default: current directory)."""
        value = self._get("OVERCAST_LOCAL_ROOT")
        return Path(value).expanduser() if value else Path.cwd()

    def get_tree_depth(self) -> int:
        """Depth used when a command builds a tree without an explicit depth."""
        value = self._get("OVERCAST_TREE_DEPTH")
        if not value:
            return UNLIMITED_DEPTH
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring invalid OVERCAST_TREE_DEPTH value: {value!r}")
            return UNLIMITED_DEPTH

    def get_config_path(self) -> Path:
        return self.config_file

    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return bool(self.api_key)


config = Config()
