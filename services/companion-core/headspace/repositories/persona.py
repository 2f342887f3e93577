import logging
from typing import Optional

from ..config import DEFAULT_USER_PERSONA
from ..errors import ErrorCode, StorageWriteFailed
from ..store import keys
from ..store.adapter import PersistedStore
from ..store.bus import ChangeBus

logger = logging.getLogger(__name__)


class PersonaRepository:
    """User persona text and the selected companion id, both plain text values."""

    def __init__(self, store: PersistedStore, bus: ChangeBus, default_persona: str = DEFAULT_USER_PERSONA, default_companion: str = "default") -> None:
        self._store = store
        self._bus = bus
        self.default_persona = default_persona
        self.default_companion = default_companion

    def persona_text(self) -> str:
        return self._store.read(keys.USER_PERSONA) or self.default_persona

    def companion_id(self) -> str:
        return self._store.read(keys.COMPANION_ID) or self.default_companion

    def _write(self, key: str, value: str) -> Optional[ErrorCode]:
        try:
            self._store.write(key, value)
        except StorageWriteFailed as error:
            logger.error("Could not save %s: %s", key, error)
            return ErrorCode.STORAGE_WRITE_FAILED
        self._bus.publish(key, value)
        return None

    def set_persona_text(self, text: str) -> Optional[ErrorCode]:
        trimmed = (text or "").strip()
        if not trimmed:
            return ErrorCode.INVALID_INPUT
        return self._write(keys.USER_PERSONA, trimmed)

    def set_companion_id(self, companion_id: str) -> Optional[ErrorCode]:
        if not (companion_id or "").strip():
            return ErrorCode.INVALID_INPUT
        return self._write(keys.COMPANION_ID, companion_id.strip())
