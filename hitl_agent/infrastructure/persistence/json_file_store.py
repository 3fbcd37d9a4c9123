"""Conversation state persisted as one JSON file per conversation key"""
from typing import Dict, Optional, Union
from pathlib import Path
import asyncio
import hashlib
import os
import re
import structlog
from pydantic import ValidationError

from hitl_agent.domain.errors import StateStoreError
from hitl_agent.domain.models.agent_state import ConversationActorState

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(key: str) -> str:
    """Map a conversation key onto a file name unique to that key"""
    readable = _UNSAFE_CHARS.sub("_", key) or "_"
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
    return f"{readable}-{digest}"


class JsonFileStateStore:
    """State store writing each conversation to <state_dir>/<safe key>-<hash>.json.

    Writes go through a temporary file and an atomic rename, so a crash never
    leaves a half-written state behind. I/O and decoding failures surface as
    StateStoreError.
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir).expanduser()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{safe_filename(key)}.json"

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def get(self, key: str) -> Optional[ConversationActorState]:
        """Load a conversation, None when it was never stored"""

        path = self._path(key)
        async with self._lock_for(key):
            if not path.exists():
                return None
            try:
                return ConversationActorState.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.error("Failed to load conversation state", key=key, path=str(path), error=str(e))
                raise StateStoreError(f"Failed to load state for {key}: {e}", key=key) from e

    async def put(self, key: str, state: ConversationActorState):
        """Persist a conversation atomically"""

        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        async with self._lock_for(key):
            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
                os.replace(tmp_path, path)
            except OSError as e:
                logger.error("Failed to save conversation state", key=key, path=str(path), error=str(e))
                raise StateStoreError(f"Failed to save state for {key}: {e}", key=key) from e

        logger.debug("Conversation state saved", key=key, version=state.version)

    async def delete(self, key: str):
        """Remove a stored conversation"""

        async with self._lock_for(key):
            try:
                self._path(key).unlink(missing_ok=True)
            except OSError as e:
                raise StateStoreError(f"Failed to delete state for {key}: {e}", key=key) from e
