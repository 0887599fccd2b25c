"""Dependency Registry — verifies lifetimes, duplicate names and missing lookups."""

import pytest

from entity_service.core.dependency import DependencyRegistry
from entity_service.core.errors import ConfigurationError


def test_static_returns_registered_value():
    registry = DependencyRegistry()
    value = object()
    registry.add_static("thing", value)
    assert registry.get("thing") is value


def test_singleton_factory_runs_once():
    registry = DependencyRegistry()
    calls = []
    registry.add_singleton("thing", lambda: calls.append(1) or object())
    assert registry.get("thing") is registry.get("thing")
    assert calls == [1]


def test_transient_builds_each_time():
    registry = DependencyRegistry()
    registry.add_transient("thing", object)
    assert registry.get("thing") is not registry.get("thing")


def test_duplicate_name_is_rejected():
    registry = DependencyRegistry()
    registry.add_static("thing", 1)
    with pytest.raises(ConfigurationError):
        registry.add_static("thing", 2)


def test_unknown_name_raises_unless_default():
    registry = DependencyRegistry()
    with pytest.raises(ConfigurationError, match="does not exist"):
        registry.get("ghost")
    assert registry.get("ghost", None) is None


def test_remove_then_re_add():
    registry = DependencyRegistry()
    registry.add_static("thing", 1)
    registry.remove("thing")
    assert not registry.has("thing")
    registry.add_static("thing", 2)
    assert registry.get("thing") == 2
