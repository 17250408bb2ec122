"""Bearer credential storage: remembered on disk or kept for the session only."""

import os
from pathlib import Path
from typing import Optional

from cloudplayer.logging import get_logger

logger = get_logger(__name__)


class CredentialStore:
    """
    Opaque get/set/clear of the proxy credential.

    A remembered token is written to a file readable only by the user; a
    session token lives in memory and is lost on exit. The session token
    wins when both exist.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Args:
            path: File for remembered tokens (None disables persistence)
        """
        self._path = path
        self._session_token: Optional[str] = None

    def get(self) -> Optional[str]:
        if self._session_token:
            return self._session_token
        if self._path is None or not self._path.exists():
            return None
        try:
            token = self._path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning("Cannot read credential file %s: %s", self._path, e)
            return None
        return token or None

    def set(self, token: str, remember: bool = True) -> None:
        """
        Store a token.

        Args:
            token: Bearer token sent as X-Auth-Token
            remember: Persist to disk instead of keeping it for this session
        """
        token = token.strip()
        if not token:
            raise ValueError("Empty credential")
        if not remember or self._path is None:
            self._session_token = token
            return
        self._session_token = None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)

    def clear(self) -> None:
        """Forget the token everywhere; the next request needs a new login."""
        self._session_token = None
        if self._path is not None:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Cannot remove credential file %s: %s", self._path, e)

    def has_credential(self) -> bool:
        return self.get() is not None
