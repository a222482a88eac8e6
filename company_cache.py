"""
Company data loader with a two-tier cache.

The company facts live in a JSON file that is embedded in every system
prompt. Parsing it on every turn is wasteful, so the parsed document is kept
in an optional memory layer (process dict or redis) and in a JSON cache file
on disk. Both layers are keyed by `company_data_<md5(path)>_<mtime>`, so
editing the source file makes every cached copy stale without any explicit
invalidation.
"""
import hashlib
import json
import os
import tempfile
import time
from pathlib import Path

import redis
import structlog
from pydantic import ValidationError

from errors import NotFoundError, ParseError
from models import CacheEntry
from utils import safe_json_loads, to_json

logger = structlog.get_logger(__name__)

MISSING = object()


class MemoryBackend:
    """Process-local dict with optional per-entry expiry"""

    name = "memory"

    def __init__(self, lifetime: int = 0, clock=time.time):
        self._entries = {}
        self._lifetime = lifetime
        self._clock = clock

    def get(self, key: str):
        entries = self._entries
        entry = entries.get(key)
        if entry is None:
            return MISSING
        expires_at, value = entry
        if expires_at is not None and self._clock() >= expires_at:
            # another request thread may have evicted it already
            entries.pop(key, None)
            return MISSING
        return value

    def set(self, key: str, value) -> None:
        """Store value; entries for older mtimes can never match again, so they go"""
        expires_at = self._clock() + self._lifetime if self._lifetime else None
        self._entries = {key: (expires_at, value)}

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self):
        return len(self._entries)


class RedisBackend:
    """Shared memory layer for multi-process deployments"""

    name = "redis"

    def __init__(self, client, lifetime: int = 0, prefix: str = "chatbot:company:"):
        self._client = client
        self._lifetime = lifetime
        self._prefix = prefix

    def get(self, key: str):
        try:
            raw = self._client.get(self._prefix + key)
        except redis.RedisError as e:
            logger.warning("Redis cache read failed", error=str(e))
            return MISSING
        if raw is None:
            return MISSING
        entry = safe_json_loads(raw)
        if not isinstance(entry, dict) or "content" not in entry:
            return MISSING
        return entry["content"]

    def set(self, key: str, value) -> None:
        data = to_json({"content": value})
        try:
            if self._lifetime:
                self._client.setex(self._prefix + key, self._lifetime, data)
            else:
                self._client.set(self._prefix + key, data)
        except redis.RedisError as e:
            logger.warning("Redis cache write failed", error=str(e))

    def clear(self) -> None:
        try:
            keys = list(self._client.scan_iter(match=self._prefix + "*"))
            if keys:
                self._client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Redis cache clear failed", error=str(e))


def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


class CompanyDataCache:
    """Loads the company data document, memoised by source mtime"""

    def __init__(self, source_path, cache_file, memory=None, clock=time.time, reader=_read_text):
        self.source_path = Path(source_path)
        self.cache_file = Path(cache_file)
        self.memory = memory
        self._clock = clock
        self._reader = reader

    def cache_key(self, last_modified: int) -> str:
        digest = hashlib.md5(str(self.source_path).encode("utf-8")).hexdigest()
        return f"company_data_{digest}_{last_modified}"

    def current_key(self) -> str:
        try:
            last_modified = int(os.stat(self.source_path).st_mtime)
        except FileNotFoundError:
            raise NotFoundError(f"Company data file not found: {self.source_path}")
        return self.cache_key(last_modified)

    def load(self):
        """Return the parsed company data, reading the source only on a miss"""
        key = self.current_key()

        if self.memory is not None:
            value = self.memory.get(key)
            if value is not MISSING:
                logger.debug("Company data cache hit", layer=self.memory.name, cache_key=key)
                return value

        entry = self._read_cache_file()
        if entry is not None and entry.cache_key == key:
            logger.debug("Company data cache hit", layer="file", cache_key=key)
            if self.memory is not None:
                self.memory.set(key, entry.content)
            return entry.content

        content = self._read_source()
        entry = CacheEntry(
            cache_key=key,
            content=content,
            timestamp=int(self._clock()),
            source=str(self.source_path),
        )
        if self.memory is not None:
            self.memory.set(key, content)
        self._write_cache_file(entry)
        logger.info("Company data loaded from source", source=str(self.source_path), cache_key=key)
        return content

    def invalidate(self) -> bool:
        """Drop every cached copy; the next load re-reads the source"""
        if self.memory is not None:
            self.memory.clear()
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            pass
        logger.info("Company data cache cleared", cache_file=str(self.cache_file))
        return True

    def status(self) -> dict:
        return {
            "source": str(self.source_path),
            "source_exists": self.source_path.exists(),
            "cache_file": str(self.cache_file),
            "cache_file_exists": self.cache_file.exists(),
            "backend": self.memory.name if self.memory is not None else "none",
        }

    def _read_source(self):
        try:
            raw = self._reader(self.source_path)
        except FileNotFoundError:
            raise NotFoundError(f"Company data file not found: {self.source_path}")
        except UnicodeDecodeError as e:
            raise ParseError(f"Company data is not valid UTF-8: {e}")
        except OSError as e:
            raise NotFoundError(f"Company data file could not be read: {e}")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Error decoding company data JSON: {e}")

    def _read_cache_file(self):
        try:
            raw = self.cache_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Company data cache file unreadable", cache_file=str(self.cache_file), error=str(e))
            return None
        data = safe_json_loads(raw)
        if not isinstance(data, dict):
            return None
        try:
            return CacheEntry.model_validate(data)
        except ValidationError:
            return None

    def _write_cache_file(self, entry: CacheEntry) -> None:
        tmp_path = None
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.cache_file.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(to_json(entry.model_dump()))
            os.replace(tmp_path, self.cache_file)
        except OSError as e:
            logger.error("Failed to write company data cache file", cache_file=str(self.cache_file), error=str(e))
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)


def build_memory_backend(settings, clock=time.time):
    """Memory layer selected by CACHE_BACKEND"""
    backend = settings.get("CACHE_BACKEND", "memory")
    lifetime = settings.get("CACHE_LIFETIME", 0)
    if backend == "redis":
        if settings.get("REDIS_URL"):
            return RedisBackend(redis.from_url(settings["REDIS_URL"]), lifetime=lifetime)
        logger.warning("CACHE_BACKEND=redis without REDIS_URL, using process memory")
        return MemoryBackend(lifetime=lifetime, clock=clock)
    if backend == "memory":
        return MemoryBackend(lifetime=lifetime, clock=clock)
    return None


def build_cache(settings, clock=time.time) -> CompanyDataCache:
    """Create the cache from a Flask config mapping"""
    return CompanyDataCache(
        settings["COMPANY_DATA_PATH"],
        settings["COMPANY_CACHE_FILE"],
        memory=build_memory_backend(settings, clock=clock),
        clock=clock,
    )
