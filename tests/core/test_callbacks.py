"""Tests for CallbackRegistry ordering, removal and error isolation."""

import logging

from pivot_host.core.callbacks import CallbackRegistry


class Owner:
    def __init__(self, name):
        self.name = name


def test_notify_runs_in_registration_order():
    registry = CallbackRegistry()
    calls = []
    a, b = Owner("a"), Owner("b")
    registry.add(a, lambda: calls.append("a1"))
    registry.add(b, lambda: calls.append("b1"))
    registry.add(a, lambda: calls.append("a2"))

    registry.notify()

    assert calls == ["a1", "b1", "a2"]
    assert len(registry) == 3


def test_remove_owner_drops_all_its_callbacks():
    registry = CallbackRegistry()
    calls = []
    a, b = Owner("a"), Owner("b")
    registry.add(a, lambda: calls.append("a"))
    registry.add(b, lambda: calls.append("b"))
    registry.add(a, lambda: calls.append("a"))

    assert registry.remove_owner(a) == 2
    registry.notify()

    assert calls == ["b"]
    assert len(registry) == 1


def test_removal_during_notify_skips_only_the_removed_owner():
    registry = CallbackRegistry()
    calls = []
    a, b, c = Owner("a"), Owner("b"), Owner("c")

    def remove_c():
        calls.append("a")
        registry.remove_owner(c)

    registry.add(a, remove_c)
    registry.add(c, lambda: calls.append("c"))
    registry.add(b, lambda: calls.append("b"))

    registry.notify()
    assert calls == ["a", "b"]

    calls.clear()
    registry.notify()
    assert calls == ["a", "b"]


def test_failing_callback_is_logged_and_others_still_run(caplog):
    registry = CallbackRegistry()
    calls = []

    def boom():
        raise RuntimeError("boom")

    registry.add(Owner("bad"), boom)
    registry.add(Owner("good"), lambda: calls.append("good"))

    with caplog.at_level(logging.ERROR):
        registry.notify()

    assert calls == ["good"]
    assert "failed" in caplog.text
