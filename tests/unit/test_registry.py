"""Tests for the engine registry."""

import pytest

from engine_orchestration.errors import InvalidRequestError
from engine_orchestration.registry import EngineRegistry

from tests.helpers.factories import QuestionEngine, StaticEngine


class TestEngineRegistry:
    def test_register_and_get(self):
        engine = StaticEngine("A")
        registry = EngineRegistry()

        assert registry.register(engine) is engine
        assert registry.get("A") is engine
        assert "A" in registry
        assert len(registry) == 1

    def test_construct_with_engines(self):
        registry = EngineRegistry([StaticEngine("A"), QuestionEngine("B")])
        assert registry.names() == ["A", "B"]

    def test_duplicate_registration_rejected(self):
        registry = EngineRegistry([StaticEngine("A")])
        with pytest.raises(InvalidRequestError):
            registry.register(StaticEngine("A"))

    def test_replace(self):
        registry = EngineRegistry([StaticEngine("A")])
        replacement = StaticEngine("A")

        registry.register(replacement, replace=True)

        assert registry.get("A") is replacement

    def test_unknown_engine(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            EngineRegistry().get("missing")
        assert exc_info.value.details == {"engine": "missing"}

    def test_select_preserves_order(self):
        registry = EngineRegistry([StaticEngine("A"), StaticEngine("B"), StaticEngine("C")])
        assert [e.name for e in registry.select(["C", "A"])] == ["C", "A"]

    def test_remove(self):
        registry = EngineRegistry([StaticEngine("A")])
        assert registry.remove("A").name == "A"
        assert registry.remove("A") is None
        assert registry.all() == []

    def test_registries_are_independent(self):
        first = EngineRegistry([StaticEngine("A")])
        second = EngineRegistry()
        assert "A" in first
        assert "A" not in second
