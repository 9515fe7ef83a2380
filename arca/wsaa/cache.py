"""In-memory credential slot mirrored to a single JSON file."""

import os
import tempfile
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

import structlog
from pydantic import ValidationError

from arca.wsaa.types import CredentialPair, utc_now

logger = structlog.get_logger(__name__)


class CredentialCache:
    """Holds the latest credential pair and persists it to ``path``."""

    def __init__(self, path: Path, clock: Callable[[], datetime] = utc_now) -> None:
        self._path = path
        self._clock = clock
        self._current: CredentialPair | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def current(self) -> CredentialPair | None:
        return self._current

    def is_fresh(self, margin: timedelta) -> bool:
        """A pair exists and outlives ``now + margin``."""
        pair = self._current
        return pair is not None and pair.is_valid_at(self._clock(), margin)

    def is_valid(self) -> bool:
        """A pair exists and has not reached its raw expiration."""
        return self.is_fresh(timedelta(0))

    def load(self) -> CredentialPair | None:
        """Read the cache file; expired records are deleted, not kept.

        Undecodable or invalid records are ignored with a warning.
        """
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("cache_read_failed", path=str(self._path), error=str(exc))
            return None

        try:
            pair = CredentialPair.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as exc:
            logger.warning("cache_invalid", path=str(self._path), error=str(exc))
            return None

        now = self._clock()
        if not pair.is_valid_at(now):
            logger.info("cache_expired", path=str(self._path))
            self._path.unlink(missing_ok=True)
            return None

        self._current = pair
        logger.info(
            "cache_loaded",
            path=str(self._path),
            minutes_left=int((pair.expiration_time - now).total_seconds() // 60),
            token_length=len(pair.token),
            sign_length=len(pair.sign),
        )
        return pair

    def store(self, pair: CredentialPair) -> None:
        """Replace the in-memory pair and atomically rewrite the file.

        A failed write keeps the new pair in memory and is only logged.
        """
        self._current = pair
        try:
            self._write(pair)
        except OSError as exc:
            logger.warning("cache_write_failed", path=str(self._path), error=str(exc))
            return
        logger.info("cache_saved", path=str(self._path))

    def _write(self, pair: CredentialPair) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = pair.model_dump_json(by_alias=True, indent=2)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            if os.name != "nt":
                os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
