import json
import os
import threading

import pytest

from company_cache import (
    MISSING, CompanyDataCache, MemoryBackend, RedisBackend, build_cache,
)
from conftest import COMPANY_DATA
from errors import NotFoundError, ParseError


def make_cache(company_file, cache_file, clock, reader, memory="default"):
    if memory == "default":
        memory = MemoryBackend(lifetime=3600, clock=clock)
    return CompanyDataCache(company_file, cache_file, memory=memory, clock=clock, reader=reader)


def touch(path, seconds_later=10):
    mtime = int(os.stat(path).st_mtime) + seconds_later
    os.utime(path, (mtime, mtime))


def test_cold_load_reads_source_and_writes_cache_file(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)

    assert cache.load() == COMPANY_DATA
    assert reader.calls == 1

    stored = json.loads(cache_file.read_text(encoding="utf-8"))
    assert stored["cache_key"] == cache.current_key()
    assert stored["content"] == COMPANY_DATA
    assert stored["timestamp"] == int(clock())
    assert stored["source"] == str(company_file)


def test_cache_key_combines_path_hash_and_mtime(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)
    key = cache.cache_key(1234)
    assert key.startswith("company_data_")
    assert key.endswith("_1234")
    assert len(key.split("_")[2]) == 32


def test_second_load_is_a_cache_hit(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)
    first = cache.load()
    second = cache.load()
    assert first == second == COMPANY_DATA
    assert reader.calls == 1


def test_memory_layer_answers_without_cache_file(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)
    cache.load()
    cache_file.unlink()

    assert cache.load() == COMPANY_DATA
    assert reader.calls == 1


def test_file_layer_hit_repopulates_memory(company_file, cache_file, clock, reader):
    make_cache(company_file, cache_file, clock, reader).load()

    memory = MemoryBackend(clock=clock)
    fresh = make_cache(company_file, cache_file, clock, reader, memory=memory)
    assert fresh.load() == COMPANY_DATA
    assert reader.calls == 1
    assert memory.get(fresh.current_key()) == COMPANY_DATA


def test_disk_only_cache(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader, memory=None)
    cache.load()
    cache.load()
    assert reader.calls == 1
    assert cache.status()["backend"] == "none"


def test_touching_source_invalidates_entry(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)
    cache.load()
    old_key = cache.current_key()

    company_file.write_text(json.dumps({"name": "Acme Renamed"}), encoding="utf-8")
    touch(company_file)

    assert cache.load() == {"name": "Acme Renamed"}
    assert reader.calls == 2
    new_key = cache.current_key()
    assert new_key != old_key
    assert json.loads(cache_file.read_text(encoding="utf-8"))["cache_key"] == new_key


def test_invalidate_forces_fresh_read(company_file, cache_file, clock, reader):
    memory = MemoryBackend(clock=clock)
    cache = make_cache(company_file, cache_file, clock, reader, memory=memory)
    cache.load()

    assert cache.invalidate() is True
    assert not cache_file.exists()
    assert len(memory) == 0

    cache.load()
    assert reader.calls == 2


def test_invalidate_without_cache_file_still_succeeds(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader)
    assert cache.invalidate() is True


def test_missing_source_raises_not_found(tmp_path, cache_file, clock, reader):
    cache = make_cache(tmp_path / "nope.json", cache_file, clock, reader)
    with pytest.raises(NotFoundError):
        cache.load()
    assert reader.calls == 0


def test_invalid_json_raises_parse_error(company_file, cache_file, clock, reader):
    company_file.write_text("{not json", encoding="utf-8")
    cache = make_cache(company_file, cache_file, clock, reader)
    with pytest.raises(ParseError):
        cache.load()
    assert not cache_file.exists()


def test_corrupt_cache_file_is_treated_as_miss(company_file, cache_file, clock, reader):
    cache_file.parent.mkdir(parents=True)
    cache_file.write_text("garbage", encoding="utf-8")
    cache = make_cache(company_file, cache_file, clock, reader, memory=None)

    assert cache.load() == COMPANY_DATA
    assert reader.calls == 1
    assert json.loads(cache_file.read_text(encoding="utf-8"))["content"] == COMPANY_DATA


def test_cache_file_with_other_key_is_ignored(company_file, cache_file, clock, reader):
    cache_file.parent.mkdir(parents=True)
    cache_file.write_text(json.dumps({
        "cache_key": "company_data_stale_1",
        "content": {"name": "Old Acme"},
        "timestamp": 1,
        "source": str(company_file),
    }), encoding="utf-8")
    cache = make_cache(company_file, cache_file, clock, reader, memory=None)

    assert cache.load() == COMPANY_DATA
    assert reader.calls == 1


def test_cache_directory_is_created(company_file, tmp_path, clock, reader):
    cache_file = tmp_path / "deep" / "nested" / "company.json"
    make_cache(company_file, cache_file, clock, reader).load()
    assert cache_file.exists()
    assert not list(cache_file.parent.glob("*.tmp"))


def test_memory_backend_expires_entries(clock):
    memory = MemoryBackend(lifetime=60, clock=clock)
    memory.set("k", {"a": 1})
    clock.advance(59)
    assert memory.get("k") == {"a": 1}
    clock.advance(1)
    assert memory.get("k") is MISSING


def test_memory_backend_without_lifetime_never_expires(clock):
    memory = MemoryBackend(lifetime=0, clock=clock)
    memory.set("k", None)
    clock.advance(10 ** 9)
    assert memory.get("k") is None


def test_memory_backend_expiry_tolerates_concurrent_eviction(clock):
    memory = MemoryBackend(lifetime=60, clock=clock)
    memory.set("k", {"a": 1})
    clock.advance(120)

    class EvictingClock:
        """Another request evicts the entry between our read and our delete"""

        def __call__(self):
            memory._entries.pop("k", None)
            return clock()

    memory._clock = EvictingClock()
    assert memory.get("k") is MISSING


def test_memory_backend_expiry_from_many_threads(clock):
    memory = MemoryBackend(lifetime=60, clock=clock)
    memory.set("k", {"a": 1})
    clock.advance(120)
    barrier = threading.Barrier(8)
    errors = []

    def worker():
        barrier.wait()
        try:
            memory.get("k")
        except Exception as e:
            errors.append(repr(e))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []


def test_memory_backend_keeps_only_the_current_key(company_file, cache_file, clock, reader):
    memory = MemoryBackend(lifetime=3600, clock=clock)
    cache = make_cache(company_file, cache_file, clock, reader, memory=memory)
    cache.load()

    for step in range(3):
        touch(company_file, seconds_later=10 * (step + 1))
        cache.load()

    assert len(memory) == 1
    assert memory.get(cache.current_key()) == COMPANY_DATA


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def setex(self, key, seconds, value):
        self.data[key] = value
        self.expiry[key] = seconds

    def scan_iter(self, match):
        prefix = match.rstrip("*")
        return [k for k in self.data if k.startswith(prefix)]

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)


def test_redis_backend_roundtrip_and_clear():
    fake = FakeRedis()
    fake.set("unrelated", "keep")
    backend = RedisBackend(fake, lifetime=300)

    assert backend.get("company_data_x_1") is MISSING
    backend.set("company_data_x_1", COMPANY_DATA)
    assert backend.get("company_data_x_1") == COMPANY_DATA
    assert fake.expiry["chatbot:company:company_data_x_1"] == 300

    backend.clear()
    assert backend.get("company_data_x_1") is MISSING
    assert fake.get("unrelated") == "keep"


def test_redis_backend_serves_cache_hits(company_file, cache_file, clock, reader):
    cache = make_cache(company_file, cache_file, clock, reader, memory=RedisBackend(FakeRedis()))
    cache.load()
    cache_file.unlink()
    assert cache.load() == COMPANY_DATA
    assert reader.calls == 1


def test_build_cache_picks_backend_from_settings(company_file, cache_file):
    settings = {
        "COMPANY_DATA_PATH": str(company_file),
        "COMPANY_CACHE_FILE": str(cache_file),
        "CACHE_BACKEND": "none",
        "CACHE_LIFETIME": 0,
    }
    assert build_cache(settings).memory is None

    settings["CACHE_BACKEND"] = "memory"
    assert isinstance(build_cache(settings).memory, MemoryBackend)

    settings["CACHE_BACKEND"] = "redis"
    assert isinstance(build_cache(settings).memory, MemoryBackend)
