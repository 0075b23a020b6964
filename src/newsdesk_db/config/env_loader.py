"""Environment loader with optional .env support.

Backup settings are merged from three layers in a fixed order:
1) .env file (if provided and exists)
2) OS environment variables
3) Explicit overrides such as CLI flags (highest precedence)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional

from dotenv import dotenv_values


class EnvLoader:
    """Merge .env values, process environment and overrides.

    Example:
        loader = EnvLoader("/etc/newsdesk/backup.env")
        settings = loader.section("NEWSDESK_BACKUP")
        settings["RETENTION_DAYS"]  # -> "30"
    """

    def __init__(self, env_file: Optional[Path | str] = None) -> None:
        self.env_file = Path(env_file) if env_file else None

    def load(self, overrides: Optional[Mapping[str, str]] = None) -> MutableMapping[str, str]:
        """Load environment data with deterministic precedence.

        Precedence (low -> high): .env file, OS env vars, overrides.
        Overrides whose value is None are ignored so optional CLI flags can
        be passed straight through.
        """
        data: MutableMapping[str, str] = {}

        env_path = self.env_file or Path.cwd() / ".env"
        if env_path.exists():
            file_values = dotenv_values(env_path)
            data.update({k: v for k, v in file_values.items() if v is not None})

        data.update(os.environ)

        if overrides:
            data.update({k: str(v) for k, v in overrides.items() if v is not None})

        return data

    def section(
        self,
        prefix: str,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """Return every key starting with ``{prefix}_`` with the prefix removed."""
        marker = f"{prefix.rstrip('_')}_"
        return {
            key[len(marker):]: value
            for key, value in self.load(overrides).items()
            if key.startswith(marker)
        }


__all__ = ["EnvLoader"]
