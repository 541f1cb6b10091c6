"""
Graph runner — thin layer over nodnod.

Targets are compiled once (nodnod agent built from the target's dependency
closure) and executed many times with fresh per-run scopes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


type _Injection = tuple[type[Any], Any]
type _AgentRun = Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]]


# ═══════════════════════════════════════════════════════════════════════════════
# TypedScope
# ═══════════════════════════════════════════════════════════════════════════════


class TypedScope:
    """nodnod.Scope with typed push/get."""

    __slots__ = ("_scope",)

    def __init__(self, detail: str = "scope") -> None:
        self._scope = Scope(detail=detail)

    @property
    def inner(self) -> Scope:
        return self._scope

    def push[T](self, typ: type[T], value: T) -> TypedScope:
        self._scope.push(Value(typ, value))
        return self

    def get[T](self, typ: type[T]) -> T:
        found = self._scope.get(typ)
        if found is None:
            raise KeyError(f"{typ.__name__} was not produced by the graph")
        return cast(T, found.value)

    async def __aenter__(self) -> TypedScope:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._scope.__aexit__(*args)


# ═══════════════════════════════════════════════════════════════════════════════
# Compiled graph + fluent run
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Compiled[T]:
    """
    Target node with a pre-built agent.

    Example:
        pipeline = G.graph(FinalResultNode)
        node = await pipeline.run().inject(spec)
    """

    target: type[T]
    agent: EventLoopAgent

    def run(self) -> Run[T]:
        return Run(self, ())


@dataclass(slots=True, frozen=True)
class Run[T]:
    """Awaitable accumulation of injected values."""

    compiled: Compiled[T]
    injections: tuple[_Injection, ...]

    def inject(self, value: object) -> Run[T]:
        """Inject under the value's runtime type."""
        return self.inject_as(cast(type[Any], type(value)), value)

    def inject_as[V](self, typ: type[V], value: V) -> Run[T]:
        """Inject under an explicit type (protocols, base classes)."""
        return Run(self.compiled, (*self.injections, (typ, value)))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        async with TypedScope(detail=self.compiled.target.__name__) as scope:
            for typ, value in self.injections:
                scope.push(typ, value)

            agent_run = cast(_AgentRun, getattr(self.compiled.agent, "run"))
            await agent_run(scope.inner, {})

            return scope.get(self.compiled.target)


_compiled: dict[type[Any], Compiled[Any]] = {}


def graph[T](target: type[T]) -> Compiled[T]:
    """Build (or reuse) the agent for a target node."""
    found = _compiled.get(target)
    if found is None:
        nodes: set[type[Node[Any, Any]]] = {cast(type[Node[Any, Any]], target)}
        found = Compiled(target, EventLoopAgent.build(nodes))
        _compiled[target] = found
    return cast(Compiled[T], found)


def run[T](target: type[T]) -> Run[T]:
    """
    Run a target node, compiling it on first use.

    Example:
        node = await G.run(FinalResultNode).inject(spec)
    """
    return graph(target).run()


__all__ = ("TypedScope", "Compiled", "Run", "graph", "run")
