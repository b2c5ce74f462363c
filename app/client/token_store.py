import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class TokenStore:
    """Where the client keeps its bearer token between runs."""

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, token: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore(TokenStore):
    """Persists the token in a single file readable only by its owner."""

    def __init__(self, path):
        self.path = Path(path).expanduser()

    def get(self) -> Optional[str]:
        try:
            token = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        return token or None

    def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token)
        os.chmod(self.path, 0o600)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        else:
            logger.debug(f"Removed stored token at {self.path}")
