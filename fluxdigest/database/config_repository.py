"""
Config repository - AI provider and Miniflux connection settings.

API keys are stored already encrypted; this layer never sees plaintext.
"""

import json

from .connection import DatabaseConnection
from .converters import row_to_ai_config, row_to_miniflux_config
from .models import DBAIConfig, DBMinifluxConfig


class ConfigRepository:
    """Repository for ai_config and miniflux_config rows."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    # --- AI provider config ---

    def upsert_ai_config(
        self,
        provider: str,
        api_url: str,
        api_key_encrypted: str | None,
        model: str | None,
        extra_config: dict | None = None,
        is_active: bool = False,
    ):
        """
        Insert or update a provider's config.

        A None api_key_encrypted keeps the stored key. Activating one
        provider deactivates the others.
        """
        with self._db.conn() as conn:
            if is_active:
                conn.execute(
                    "UPDATE ai_config SET is_active = 0 WHERE provider != ?",
                    (provider,)
                )
            conn.execute(
                """INSERT INTO ai_config
                   (provider, api_url, api_key_encrypted, model, extra_config, is_active, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(provider) DO UPDATE SET
                   api_url = excluded.api_url,
                   api_key_encrypted = COALESCE(excluded.api_key_encrypted, api_key_encrypted),
                   model = excluded.model,
                   extra_config = excluded.extra_config,
                   is_active = excluded.is_active,
                   updated_at = CURRENT_TIMESTAMP""",
                (
                    provider, api_url, api_key_encrypted, model,
                    json.dumps(extra_config) if extra_config else None,
                    1 if is_active else 0,
                )
            )

    def get_ai_config(self, provider: str) -> DBAIConfig | None:
        """Get the config row for one provider."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM ai_config WHERE provider = ?", (provider,)
            ).fetchone()
            return row_to_ai_config(row) if row else None

    def get_active_ai_config(self) -> DBAIConfig | None:
        """Get the active provider config, if any."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM ai_config WHERE is_active = 1 ORDER BY updated_at DESC LIMIT 1"
            ).fetchone()
            return row_to_ai_config(row) if row else None

    def delete_ai_config(self, provider: str) -> bool:
        """Delete a provider's config."""
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM ai_config WHERE provider = ?", (provider,))
            return cursor.rowcount > 0

    # --- Miniflux config ---

    def upsert_miniflux_config(
        self,
        api_url: str,
        api_key_encrypted: str | None,
        name: str = "default",
    ):
        """Insert or update the Miniflux connection. None keeps the stored key."""
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO miniflux_config (name, api_url, api_key_encrypted, is_active, updated_at)
                   VALUES (?, ?, ?, 1, CURRENT_TIMESTAMP)
                   ON CONFLICT(name) DO UPDATE SET
                   api_url = excluded.api_url,
                   api_key_encrypted = COALESCE(excluded.api_key_encrypted, api_key_encrypted),
                   is_active = 1,
                   updated_at = CURRENT_TIMESTAMP""",
                (name, api_url, api_key_encrypted)
            )

    def get_active_miniflux_config(self) -> DBMinifluxConfig | None:
        """Get the active Miniflux connection, if any."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM miniflux_config WHERE is_active = 1 ORDER BY updated_at DESC LIMIT 1"
            ).fetchone()
            return row_to_miniflux_config(row) if row else None
