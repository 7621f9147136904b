import json
import tempfile
import threading
from pathlib import Path

from lm_core.domain.models import ChatMessage
from lm_core.infrastructure.storage.lm_cache import LmCache, generate_message_key


def _msgs(text):
    return [ChatMessage(role="user", content=text)]


def test_message_key_format():
    msgs = [ChatMessage(role="user", content="a"), ChatMessage(role="assistant", content="b")]
    assert generate_message_key("k", msgs) == "k->user:a|assistant:b"


def test_set_then_get_round_trip():
    cache = LmCache()
    value = {"type": "content", "names": ["IsEnabled"], "nested": {"n": 1, "ok": True, "none": None}}
    cache.set("k", _msgs("a"), value)
    assert cache.get("k", _msgs("a")) == value
    assert cache.get("k", _msgs("b")) is None
    assert cache.get("other", _msgs("a")) is None


def test_evicts_oldest_after_three():
    cache = LmCache()
    for text in ["a", "b", "c", "d"]:
        cache.set("k", _msgs(text), {"v": text})
    assert cache.get("k", _msgs("a")) is None
    for text in ["b", "c", "d"]:
        assert cache.get("k", _msgs(text)) == {"v": text}


def test_reset_moves_entry_to_most_recent():
    cache = LmCache()
    for text in ["a", "b", "c"]:
        cache.set("k", _msgs(text), {"v": text})
    cache.set("k", _msgs("a"), {"v": "a2"})
    cache.set("k", _msgs("d"), {"v": "d"})
    assert cache.get("k", _msgs("b")) is None
    assert cache.get("k", _msgs("a")) == {"v": "a2"}
    assert cache.get("k", _msgs("c")) == {"v": "c"}


def test_keys_are_bounded_independently():
    cache = LmCache()
    for text in ["a", "b", "c"]:
        cache.set("k1", _msgs(text), text)
    cache.set("k2", _msgs("x"), "x")
    assert cache.get("k1", _msgs("a")) == "a"


def test_persists_to_file_and_reloads():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "sub" / "lm.cache"
        cache = LmCache(path)
        cache.set("k", _msgs("a"), {"type": "content", "x": 1})

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"k": [{"msgKey": "k->user:a", "value": {"type": "content", "x": 1}}]}
        assert "\n  " in path.read_text(encoding="utf-8")

        reloaded = LmCache(path)
        assert reloaded.get("k", _msgs("a")) == {"type": "content", "x": 1}


def test_corrupt_or_invalid_file_loads_empty():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "lm.cache"
        path.write_text("{not json", encoding="utf-8")
        assert LmCache(path).get("k", _msgs("a")) is None

        path.write_text(json.dumps({"k": "not a list"}), encoding="utf-8")
        cache = LmCache(path)
        assert cache.get("k", _msgs("a")) is None
        cache.set("k", _msgs("a"), 1)
        assert json.loads(path.read_text(encoding="utf-8"))["k"][0]["value"] == 1


def test_configure_switches_file():
    with tempfile.TemporaryDirectory() as d:
        first = Path(d) / "first.cache"
        second = Path(d) / "second.cache"
        LmCache(second).set("k", _msgs("b"), "from-second")

        cache = LmCache(first)
        cache.set("k", _msgs("a"), "from-first")
        cache.configure(second)
        assert cache.path == second
        assert cache.get("k", _msgs("a")) is None
        assert cache.get("k", _msgs("b")) == "from-second"


def test_concurrent_sets_do_not_corrupt_store():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "lm.cache"
        cache = LmCache(path)

        def worker(i):
            for j in range(10):
                cache.set(f"k{i}", _msgs(str(j)), j)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert sorted(data) == [f"k{i}" for i in range(8)]
        assert all(len(entries) == 3 for entries in data.values())
        assert [e["value"] for e in data["k0"]] == [7, 8, 9]


def test_set_is_skipped_once_cancelled():
    cancel = threading.Event()
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "lm.cache"
        cache = LmCache(path)
        assert cache.set("k", _msgs("a"), 1, cancel_event=cancel) is True
        cancel.set()
        assert cache.set("k", _msgs("b"), 2, cancel_event=cancel) is False
        assert cache.get("k", _msgs("b")) is None
        assert json.loads(path.read_text(encoding="utf-8")) == {"k": [{"msgKey": "k->user:a", "value": 1}]}


def test_cancel_under_cache_lock_blocks_pending_write():
    # 取消方持有缓存锁时置位，等待中的写入拿到锁后必须放弃
    cache = LmCache()
    cancel = threading.Event()
    results = []
    with cache.lock:
        writer = threading.Thread(target=lambda: results.append(cache.set("k", _msgs("a"), 1, cancel_event=cancel)))
        writer.start()
        writer.join(timeout=0.1)
        assert writer.is_alive()
        cancel.set()
    writer.join(timeout=5)
    assert results == [False]
    assert cache.get("k", _msgs("a")) is None
