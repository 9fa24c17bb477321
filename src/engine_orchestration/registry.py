"""Explicit container for the engines available to a service.

Registries are constructed and passed around by the caller; there is no
module-level default instance.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .engine import Engine
from .errors import InvalidRequestError


class EngineRegistry:
    """Engines keyed by name, in registration order."""

    def __init__(self, engines: Optional[Iterable[Engine]] = None):
        self._engines: Dict[str, Engine] = {}
        for engine in engines or ():
            self.register(engine)

    def register(self, engine: Engine, *, replace: bool = False) -> Engine:
        if not engine.name:
            raise InvalidRequestError("engine has no name", details={"engine": repr(engine)})
        if engine.name in self._engines and not replace:
            raise InvalidRequestError(
                f"engine already registered: {engine.name}", details={"engine": engine.name}
            )
        self._engines[engine.name] = engine
        return engine

    def remove(self, name: str) -> Optional[Engine]:
        return self._engines.pop(name, None)

    def get(self, name: str) -> Engine:
        try:
            return self._engines[name]
        except KeyError:
            raise InvalidRequestError(
                f"unknown engine: {name}", details={"engine": name}
            ) from None

    def select(self, names: Sequence[str]) -> List[Engine]:
        """Engines for ``names`` in the order given."""

        return [self.get(name) for name in names]

    def names(self) -> List[str]:
        return list(self._engines)

    def all(self) -> List[Engine]:
        return list(self._engines.values())

    def __contains__(self, name: object) -> bool:
        return name in self._engines

    def __len__(self) -> int:
        return len(self._engines)
