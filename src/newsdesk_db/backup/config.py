"""Backup configuration management for the newsdesk store

Settings come from defaults, a .env file, the process environment and
explicit overrides, in that order of precedence. Every variable is read
under the ``NEWSDESK_BACKUP_`` prefix, e.g. ``NEWSDESK_BACKUP_RETENTION_DAYS``.
"""

from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from newsdesk_db.config import EnvLoader

DEFAULT_ENV_PREFIX = "NEWSDESK_BACKUP"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class BackupConfig(BaseModel):
    """Backup engine configuration with environment variable overrides"""

    # Directories
    backup_dir: Path = Field(
        default=Path("./data/backups"),
        description="Where archives, record sidecars and restore snapshots live"
    )
    data_dir: Path = Field(
        default=Path("./data"),
        description="Data directory scanned by incremental backups and restored into"
    )
    database_path: Path = Field(
        default=Path("./data/newsdesk.db"),
        description="SQLite database file of the news store"
    )

    # What to back up
    source_paths: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Extra (name, path) pairs added to full backups under name/"
    )
    full_mode: Literal["dump", "copy"] = Field(
        default="dump",
        description="Full backup content: logical SQL dump or raw database copy"
    )
    tables: List[str] = Field(
        default_factory=list,
        description="Tables included in a logical dump (empty = all tables)"
    )

    # Retention
    retention_days: int = Field(
        default=30,
        description="Days to keep a backup, captured on each record at creation",
        ge=1
    )
    max_backups: int = Field(
        default=100,
        description="Count limit over completed and verified backups",
        ge=1
    )
    keep_count: Optional[int] = Field(
        default=None,
        description="Survivors kept when the count limit is exceeded (default: max_backups)",
        ge=1
    )
    max_total_size_mb: int = Field(
        default=10240,
        description="Total size limit over completed and verified backups, in MB",
        ge=1
    )
    cleanup_after_backup: bool = Field(
        default=True,
        description="Run the retention sweep after every successful backup"
    )

    # Archive format and integrity
    compression_enabled: bool = Field(
        default=True,
        description="Write tar.gz archives instead of plain tar"
    )
    compression_level: int = Field(
        default=6,
        description="Compression level (1-9, higher = better compression but slower)",
        ge=1,
        le=9
    )
    checksum_enabled: bool = Field(
        default=True,
        description="Compute the SHA-256 digest of every archive"
    )
    verify_after_backup: bool = Field(
        default=True,
        description="Verify backup integrity after creation"
    )

    # Encryption is applied by an external transform; only the settings live here
    encryption_enabled: bool = Field(default=False)
    encryption_algorithm: str = Field(default="aes-256-gcm")
    encryption_key_path: Optional[Path] = Field(default=None)

    # Scheduling and restore
    auto_backup_interval: int = Field(
        default=0,
        description="Seconds between automatic full backups (0 disables)",
        ge=0
    )
    strip_components: int = Field(
        default=0,
        description="Leading path segments removed from entries on restore",
        ge=0
    )

    # Notifications
    notify_on_success: bool = Field(default=False)
    notify_on_failure: bool = Field(default=True)

    @field_validator("source_paths", mode="before")
    @classmethod
    def parse_source_paths(cls, v):
        """Accept "name:path,name:path" strings as well as pairs"""
        if isinstance(v, str):
            pairs = []
            for item in v.split(","):
                item = item.strip()
                if not item:
                    continue
                if ":" not in item:
                    raise ValueError(f"Source path must be 'name:path', got {item!r}")
                name, path = item.split(":", 1)
                pairs.append((name.strip(), path.strip()))
            return pairs
        return v

    @field_validator("source_paths")
    @classmethod
    def validate_source_names(cls, v: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        for name, _ in v:
            if not name or "/" in name or name in (".", ".."):
                raise ValueError(f"Invalid source name: {name!r}")
        return v

    @field_validator("tables", mode="before")
    @classmethod
    def parse_tables(cls, v):
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @field_validator("full_mode", mode="before")
    @classmethod
    def normalize_full_mode(cls, v):
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_encryption_key(self) -> "BackupConfig":
        if self.encryption_enabled and self.encryption_key_path is None:
            raise ValueError("encryption_key_path is required when encryption is enabled")
        return self

    @property
    def max_total_size_bytes(self) -> int:
        return self.max_total_size_mb * 1024 * 1024

    @property
    def snapshot_dir(self) -> Path:
        """Directory holding pre-restore snapshots"""
        return self.backup_dir / "snapshots"

    @property
    def export_dir(self) -> Path:
        """Default directory for table exports"""
        return self.backup_dir / "exports"

    def get_compression_extension(self) -> str:
        """Get archive extension for the current compression setting"""
        return "tar.gz" if self.compression_enabled else "tar"

    def get_source_paths(self) -> List[Tuple[str, Path]]:
        """Resolve configured source paths that exist on the filesystem.

        Relative paths are taken relative to ``data_dir``.
        """
        paths = []
        for name, raw in self.source_paths:
            full_path = Path(raw)
            if not full_path.is_absolute():
                full_path = self.data_dir / raw
            if full_path.exists():
                paths.append((name, full_path))
        return paths

    def summary(self) -> Dict[str, object]:
        """JSON-friendly view of the effective settings"""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(
        cls,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "BackupConfig":
        """Create configuration from environment variables

        Args:
            env_prefix: Environment variable prefix (default: NEWSDESK_BACKUP)
            env_file: Optional .env file (default: ./.env when present)
            overrides: Highest-precedence values keyed by field name in
                upper case without the prefix, e.g. {"BACKUP_DIR": "/tmp/b"}

        Returns:
            BackupConfig instance
        """
        prefix = env_prefix.rstrip("_")
        prefixed = None
        if overrides:
            prefixed = {f"{prefix}_{k}": v for k, v in overrides.items()}
        settings = EnvLoader(env_file).section(prefix, prefixed)

        values: Dict[str, object] = {}
        for name, field in cls.model_fields.items():
            raw = settings.get(name.upper())
            if raw is None or raw == "":
                continue
            if field.annotation is bool:
                values[name] = raw.strip().lower() in _TRUE_VALUES
            else:
                values[name] = raw
        return cls(**values)
