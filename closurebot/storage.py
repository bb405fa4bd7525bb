from __future__ import annotations

import os
import tempfile

from .config import logger
from .errors import PersistenceError


class TokenStore:
    """Plain-text file holding the single active bearer token."""

    def __init__(self, path: str) -> None:
        self.path = path

    def ensure(self) -> None:
        """Create the token file (and its directory) if it does not exist yet."""
        try:
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            if not os.path.exists(self.path):
                with open(self.path, "a", encoding="utf-8"):
                    pass
                logger.info(f"Created empty token file at {self.path}")
        except OSError as e:
            raise PersistenceError(f"Could not create token file {self.path}: {e}") from e

    def load(self) -> str:
        self.ensure()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                token = f.read().strip()
        except OSError as e:
            raise PersistenceError(f"Could not read token file {self.path}: {e}") from e
        logger.debug(f"Loaded token from {self.path} ({'present' if token else 'empty'})")
        return token

    def save(self, token: str) -> None:
        # Write a sibling file then swap it in, so a reader never sees half a token
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".token-", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(token)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise PersistenceError(f"Could not save token file {self.path}: {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.debug(f"Token saved to {self.path}")
