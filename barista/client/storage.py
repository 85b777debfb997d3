"""
Durable client-side session storage.

The session lives in ONE record:

    {"auth_token": "...", "auth_user": {...}, "issued_at": "..."}

so no reader can ever observe a token without its user or the reverse.
`FileSessionStorage` commits the record with a write-to-temp + os.replace.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from barista.utils import Logger
from barista.utils.exceptions import CorruptSessionError
from .schemas import Session

logger = Logger("barista.client.storage")


class SessionStorage(ABC):
    """Load / save / clear one serialized Session."""

    @abstractmethod
    def _read(self) -> Optional[str]: ...

    @abstractmethod
    def _write(self, raw: str) -> None: ...

    @abstractmethod
    def _delete(self) -> None: ...

    def load(self) -> Optional[Session]:
        """Return the stored session, None if absent. Raises CorruptSessionError."""
        raw = self._read()
        if raw is None or not raw.strip():
            return None
        try:
            return Session.model_validate(json.loads(raw))
        except (ValueError, TypeError, ValidationError) as e:
            raise CorruptSessionError(f"Stored session is corrupt: {e}") from e

    def save(self, session: Session) -> None:
        self._write(session.model_dump_json(by_alias=True))

    def clear(self) -> None:
        self._delete()


class MemorySessionStorage(SessionStorage):
    """Process-local storage; `raw` is exposed for inspection in tests."""

    def __init__(self, raw: Optional[str] = None):
        self.raw = raw

    def _read(self) -> Optional[str]:
        return self.raw

    def _write(self, raw: str) -> None:
        self.raw = raw

    def _delete(self) -> None:
        self.raw = None


class FileSessionStorage(SessionStorage):
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def _read(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise CorruptSessionError(f"Stored session is not UTF-8: {e}") from e

    def _write(self, raw: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(raw)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug(f"Session written to {self.path}")

    def _delete(self) -> None:
        self.path.unlink(missing_ok=True)
