import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any
from sqlite_utils import Database
from sqlite_utils.db import NotFoundError

log = logging.getLogger(__name__)

AUTO_TRANSLATE_RECEIVED_KEY = "autoTranslateReceived"


class PreferenceReadError(Exception):
    """The datastore could not be read, or held something that is not JSON."""


class DataStore:
    """Namespaced key-value store. Values are kept as JSON text."""

    def __init__(self, db_path: str, namespace: str):
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.db = Database(db_path)
        self.namespace = namespace
        self._ensure_tables()

    def _ensure_tables(self):
        """Ensure tables exist with proper structure."""
        if "datastore" not in self.db.table_names():
            # pyrefly: ignore [missing-attribute]
            self.db["datastore"].create({
                "namespace": str,
                "key": str,
                "value": str,  # JSON encoded
                "updated_at": str
            }, pk=("namespace", "key"))

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            # pyrefly: ignore [missing-attribute]
            row = self.db["datastore"].get((self.namespace, key))
        except NotFoundError:
            return default
        except sqlite3.Error as e:
            raise PreferenceReadError(f"Could not read {self.namespace}/{key}") from e

        try:
            return json.loads(row["value"])
        except (TypeError, json.JSONDecodeError) as e:
            raise PreferenceReadError(f"Corrupt value for {self.namespace}/{key}") from e

    async def set(self, key: str, value: Any):
        row = {
            "namespace": self.namespace,
            "key": key,
            "value": json.dumps(value),
            "updated_at": datetime.now(timezone.utc).isoformat()
        }
        # pyrefly: ignore [missing-attribute]
        self.db["datastore"].upsert(row, pk=("namespace", "key"))


class AutoTranslatePrefs:
    """Per-channel auto-translate flags, stored as one JSON object keyed by channel id."""

    def __init__(self, store: DataStore):
        self.store = store

    async def _load(self) -> dict:
        flags = await self.store.get(AUTO_TRANSLATE_RECEIVED_KEY)
        return flags if isinstance(flags, dict) else {}

    async def get(self, channel_id) -> bool:
        """Missing channels and unreadable storage both count as disabled."""
        try:
            flags = await self._load()
        except PreferenceReadError as e:
            log.warning(f"Auto-translate preferences unavailable: {e}")
            return False
        return bool(flags.get(str(channel_id), False))

    async def set(self, channel_id, enabled: bool):
        try:
            flags = await self._load()
        except PreferenceReadError as e:
            log.warning(f"Overwriting unreadable auto-translate preferences: {e}")
            flags = {}
        flags[str(channel_id)] = bool(enabled)
        await self.store.set(AUTO_TRANSLATE_RECEIVED_KEY, flags)

    async def toggle(self, channel_id) -> bool:
        enabled = not await self.get(channel_id)
        await self.set(channel_id, enabled)
        return enabled
