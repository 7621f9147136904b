import json
import threading
import time

import pytest

from lm_core.domain.exceptions import ValidationError
from lm_core.domain.models import ChatMessage, ChatOptions, LmContentResponse, LmErrorResponse, LmUnavailable
from lm_core.infrastructure.storage.lm_cache import LmCache
from lm_core.lm.context import LmContext
from lm_core.lm.rule_checker import LmRuleChecker


class Verdict(LmContentResponse):
    ok: bool


class SlowProvider:
    """带延迟的 Provider，记录同时在途的最大调用数。"""

    name = "slow"

    def __init__(self, delay=0.05):
        self.delay = delay
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0

    def chat_complete(self, messages, options):
        with self._lock:
            self.in_flight += 1
            self.calls += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delay)
            data = json.loads(messages[-2].content.split("\n", 1)[1])
            if data["value"] % 3 == 0:
                return '{"type": "error", "error": "multiple of three"}'
            return json.dumps({"type": "content", "ok": data["value"] % 2 == 0})
        finally:
            with self._lock:
                self.in_flight -= 1


def _checker(provider, **kw):
    kw.setdefault("key_func", lambda p: str(p["value"]))
    context = LmContext(provider=provider, cache=LmCache(), retry_count=2)
    return LmRuleChecker(
        "test-rule",
        [ChatMessage(role="user", content="Check the value.")],
        ChatOptions(["gpt-4o"]),
        Verdict,
        context=context,
        **kw,
    )


def test_bounded_concurrency_and_one_callback_per_task():
    provider = SlowProvider()
    checker = _checker(provider, max_concurrency=2)
    lock = threading.Lock()
    outcomes = {}

    def record(i, kind):
        def cb(result):
            with lock:
                outcomes.setdefault(i, []).append((kind, result))
        return cb

    futures = [checker.queue({"value": i}, record(i, "success"), record(i, "error")) for i in range(1, 11)]
    assert checker.wait(timeout=10)
    checker.close()

    assert provider.max_in_flight <= 2
    assert sorted(outcomes) == list(range(1, 11))
    assert all(len(v) == 1 for v in outcomes.values())
    for i, [(kind, result)] in outcomes.items():
        if i % 3 == 0:
            assert kind == "error" and isinstance(result, LmErrorResponse)
        else:
            assert kind == "success" and result == Verdict(ok=i % 2 == 0)
    assert all(f.done() for f in futures)


def test_queue_does_not_block():
    provider = SlowProvider(delay=0.2)
    checker = _checker(provider, max_concurrency=1)
    start = time.monotonic()
    for i in range(5):
        checker.queue({"value": i + 1}, lambda r: None, lambda e: None)
    assert time.monotonic() - start < 0.2
    checker.close(cancel_pending=True)


def test_prompt_and_caller_key():
    checker = _checker(SlowProvider(), key_func=lambda p: p["name"])
    messages = checker.build_messages({"name": "Enabled", "value": 1})
    assert messages[0].content == "Check the value."
    assert messages[1].content.startswith("Data to check:\n")
    assert json.loads(messages[1].content.split("\n", 1)[1]) == {"name": "Enabled", "value": 1}
    assert checker.caller_key({"name": "Enabled"}) == "test-rule.Enabled"
    checker.close()


def test_duplicate_checks_share_the_cache():
    provider = SlowProvider(delay=0)
    with _checker(provider, max_concurrency=1) as checker:
        for _ in range(3):
            checker.queue({"value": 2}, lambda r: None, lambda e: None)
        checker.wait()
    assert provider.calls == 1


def test_unavailable_provider_routes_to_on_error():
    context = LmContext(provider=LmUnavailable("no provider"))
    checker = LmRuleChecker("r", [], ChatOptions(), Verdict, context=context, key_func=str)
    errors = []
    future = checker.queue({"value": 1}, lambda r: pytest.fail("unexpected success"), errors.append)
    assert future.result(timeout=5) == LmUnavailable("no provider")
    checker.close()
    assert errors == [LmUnavailable("no provider")]


def test_callback_exception_is_isolated():
    provider = SlowProvider(delay=0)
    results = []

    def boom(_):
        raise RuntimeError("callback failure")

    with _checker(provider, max_concurrency=1) as checker:
        checker.queue({"value": 1}, boom, lambda e: None)
        checker.queue({"value": 2}, results.append, lambda e: None)
        checker.wait()
    assert results == [Verdict(ok=True)]


def test_cancel_pending_drops_results():
    provider = SlowProvider(delay=0.1)
    checker = _checker(provider, max_concurrency=1)
    cache = checker._context.cache
    calls = []
    for i in range(5):
        checker.queue({"value": i + 1}, calls.append, calls.append)
    checker.close(cancel_pending=True)
    time.sleep(0.3)
    assert provider.calls <= 1
    assert calls == []
    payload = {"value": 1}
    assert cache.get(checker.caller_key(payload), checker.build_messages(payload)) is None
    with pytest.raises(RuntimeError):
        checker.queue({"value": 9}, calls.append, calls.append)


def test_empty_name_rejected():
    with pytest.raises(ValidationError):
        LmRuleChecker("", [], ChatOptions(), Verdict, context=LmContext(provider=LmUnavailable()), key_func=str)


class GatedProvider:
    """调用阻塞直到 release 被置位。"""

    name = "gated"

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def chat_complete(self, messages, options):
        self.started.set()
        self.release.wait(5)
        return json.dumps({"type": "content", "ok": True})


def test_close_with_cancel_abandons_in_flight_call():
    provider = GatedProvider()
    checker = _checker(provider, max_concurrency=1)
    calls = []
    running = checker.queue({"value": 1}, calls.append, calls.append)
    queued = checker.queue({"value": 2}, calls.append, calls.append)
    assert provider.started.wait(5)

    start = time.monotonic()
    checker.close(cancel_pending=True)
    assert time.monotonic() - start < 1
    assert queued.cancelled()

    provider.release.set()
    assert running.result(timeout=5) is None
    assert calls == []
    payload = {"value": 1}
    assert checker._context.cache.get(checker.caller_key(payload), checker.build_messages(payload)) is None


def test_exception_in_with_block_cancels_pending():
    provider = GatedProvider()
    calls = []
    with pytest.raises(KeyError):
        with _checker(provider, max_concurrency=1) as checker:
            running = checker.queue({"value": 1}, calls.append, calls.append)
            assert provider.started.wait(5)
            raise KeyError("traversal failed")
    provider.release.set()
    assert running.result(timeout=5) is None
    assert calls == []


def test_key_func_must_be_callable():
    with pytest.raises(ValidationError):
        LmRuleChecker("r", [], ChatOptions(), Verdict, context=LmContext(provider=LmUnavailable()), key_func="target")
