"""
evdms_rules.lifecycle.machine

Generic finite state machine with role-guarded edges.

Responsibilities:
- Answer `can_transition(current, next, role)`.
- Apply a transition to an entity (a frozen dataclass with a `status` field),
  conditioned on the caller's last-known state.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable, Mapping
from typing import Any, Generic, Protocol, TypeVar

from evdms_rules.auth.models import Role
from evdms_rules.errors import ConfigurationError, InvalidTransition
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)

S = TypeVar("S", bound=enum.StrEnum)
E = TypeVar("E", bound="HasStatus")

# (current, next, role) -> allowed
RoleGuard = Callable[[Any, Any, Role | None], bool]


class HasStatus(Protocol):
    @property
    def status(self) -> Any: ...


class StateMachine(Generic[S]):
    def __init__(
        self,
        *,
        entity: str,
        states: type[S],
        initial: S,
        edges: Mapping[S, frozenset[S]],
        terminal: frozenset[S],
        guard: RoleGuard,
    ) -> None:
        for state in terminal:
            if edges.get(state):
                raise ConfigurationError(f"{entity}: terminal state {state} has outgoing edges")
        unknown = set(edges) - set(states)
        for targets in edges.values():
            unknown |= set(targets) - set(states)
        if unknown:
            raise ConfigurationError(f"{entity}: unknown states {sorted(map(str, unknown))}")

        self.entity = entity
        self.states = states
        self.initial = initial
        self.terminal = terminal
        self._edges = {s: frozenset(edges.get(s, frozenset())) for s in states}
        self._guard = guard

    def is_terminal(self, state: S) -> bool:
        return state in self.terminal

    def can_transition(self, current: S, next: S, role: Role | None) -> bool:
        if next not in self._edges[current]:
            return False
        return self._guard(current, next, role)

    def allowed_targets(self, current: S, role: Role | None) -> list[S]:
        return [s for s in self.states if self.can_transition(current, s, role)]

    def check(self, current: S, next: S, role: Role | None, *, unguarded: bool = False) -> None:
        allowed = (
            next in self._edges[current] if unguarded else self.can_transition(current, next, role)
        )
        if not allowed:
            log.info(
                "transition_rejected",
                entity=self.entity,
                current=current.value,
                requested=next.value,
                role=role.value if role else None,
            )
            raise InvalidTransition(
                entity=self.entity,
                current=current.value,
                requested=next.value,
                role=role.value if role else None,
            )

    def apply(
        self,
        entity: E,
        next: S,
        role: Role | None,
        *,
        expected: S | None = None,
        unguarded: bool = False,
    ) -> E:
        """
        Returns a copy of `entity` in state `next`.

        `expected` is the state the caller based its decision on; if the entity has
        moved on since, the transition is rejected against the stored state.
        `unguarded` skips the role guard (never the edge table) for transitions
        triggered by time rather than by an actor.
        """

        current = self.states(entity.status)
        if expected is not None and expected != current:
            log.info(
                "transition_stale",
                entity=self.entity,
                expected=expected.value,
                stored=current.value,
            )
            raise InvalidTransition(
                entity=self.entity,
                current=current.value,
                requested=next.value,
                role=role.value if role else None,
            )
        self.check(current, next, role, unguarded=unguarded)
        return dataclasses.replace(entity, status=next)  # type: ignore[type-var]


# --- Module Notes -----------------------------------------------------------
# The machine only decides legality; persisting the new state (with the same
# expected-state condition) is the job of `evdms_rules.services`.
