"""Engine plugin interface.

An engine is one domain computation behind a uniform contract: a pure
precondition check (``can_run``) and a ``run`` that returns an
``EngineResult`` or raises. ``run`` may be a coroutine function or a plain
function; the orchestrator handles both.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .generator import SeededGenerator, derive_seed
from .models import EngineResult

DEFAULT_SKIP_REASON = "precondition_not_met"


class EngineInput(BaseModel):
    """Immutable, caller-supplied input shared by every engine in a run."""

    model_config = ConfigDict(frozen=True)

    def seed_fields(self) -> Tuple[Any, ...]:
        """Stable field values used to seed generators, in declaration order."""

        return tuple(getattr(self, name) for name in type(self).model_fields)

    def cache_fields(self) -> Tuple[Any, ...]:
        """Ordered field values that identify this input for memoization."""

        return self.seed_fields()

    def seed(self, namespace: str = "") -> str:
        if namespace:
            return derive_seed(namespace, *self.seed_fields())
        return derive_seed(*self.seed_fields())


EngineReturn = Union[EngineResult, Mapping[str, Any]]


class Engine(ABC):
    """Base class for pluggable computation engines.

    Engines must not share mutable state with each other; anything needing
    reproducible randomness builds its own generator via ``generator_for``.
    """

    name: str = ""
    # Per-engine overrides; None falls back to the orchestrator config
    timeout_ms: Optional[int] = None
    max_retries: Optional[int] = None

    def __init__(self, name: Optional[str] = None):
        if name:
            self.name = name
        if not self.name:
            self.name = type(self).__name__

    def can_run(self, engine_input: EngineInput) -> bool:
        """Pure precondition check; the default engine runs on any input."""

        return True

    def skip_reason(self, engine_input: EngineInput) -> str:
        return DEFAULT_SKIP_REASON

    @abstractmethod
    def run(self, engine_input: EngineInput) -> Any:
        """Compute a result; may be ``async def``. Raise to signal failure."""

    def generator_for(self, engine_input: EngineInput) -> SeededGenerator:
        """Fresh generator seeded from the input and this engine's name."""

        return SeededGenerator(engine_input.seed(self.name))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
