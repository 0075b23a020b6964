"""Configuration helpers for the newsdesk database layer.

Example:
    from newsdesk_db.config import EnvLoader

    env = EnvLoader(".env").load({"NEWSDESK_BACKUP_RETENTION_DAYS": "14"})
"""

from newsdesk_db.config.env_loader import EnvLoader

__all__ = ["EnvLoader"]
