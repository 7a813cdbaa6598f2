from __future__ import annotations

import heapq
from typing import Dict, List, Optional, Sequence

from accessgate.actions.types import Action
from accessgate.errors import ConfigurationError, CyclicDependencyError


def validate_actions(actions: Sequence[Action]) -> Dict[str, int]:
    """Return `{action_id: position}`; reject duplicate ids and unknown dependencies."""
    positions: Dict[str, int] = {}
    for index, action in enumerate(actions):
        if action.id in positions:
            raise ConfigurationError(
                f"duplicate action id `{action.id}`",
                code="DUPLICATE_ACTION_ID",
                details={"action_id": action.id},
            )
        positions[action.id] = index

    for action in actions:
        for dep in sorted(action.dependencies):
            if dep == action.id:
                raise CyclicDependencyError([action.id, action.id])
            if dep not in positions:
                raise ConfigurationError(
                    f"action `{action.id}` depends on unknown action `{dep}`",
                    code="UNKNOWN_DEPENDENCY",
                    details={"action_id": action.id, "dependency": dep},
                )
    return positions


def find_cycle(actions: Sequence[Action]) -> Optional[List[str]]:
    by_id = {action.id: action for action in actions}
    visiting: List[str] = []
    on_stack = set()
    done = set()

    def visit(node: str) -> Optional[List[str]]:
        visiting.append(node)
        on_stack.add(node)
        for dep in sorted(by_id[node].dependencies):
            if dep not in by_id or dep in done:
                continue
            if dep in on_stack:
                start = visiting.index(dep)
                return visiting[start:] + [dep]
            found = visit(dep)
            if found:
                return found
        visiting.pop()
        on_stack.discard(node)
        done.add(node)
        return None

    for action in actions:
        if action.id not in done:
            found = visit(action.id)
            if found:
                return found
    return None


def topological_order(actions: Sequence[Action]) -> List[Action]:
    """
    Kahn's algorithm; among ready actions the one supplied first runs first,
    so the order is deterministic.
    """
    positions = validate_actions(actions)
    indegree: Dict[str, int] = {action.id: len(action.dependencies) for action in actions}
    dependents: Dict[str, List[str]] = {action.id: [] for action in actions}
    for action in actions:
        for dep in action.dependencies:
            dependents[dep].append(action.id)

    ready = [positions[action.id] for action in actions if indegree[action.id] == 0]
    heapq.heapify(ready)
    ordered: List[Action] = []
    while ready:
        action = actions[heapq.heappop(ready)]
        ordered.append(action)
        for child in dependents[action.id]:
            indegree[child] -= 1
            if indegree[child] == 0:
                heapq.heappush(ready, positions[child])

    if len(ordered) != len(actions):
        cycle = find_cycle(actions) or sorted(aid for aid, deg in indegree.items() if deg > 0)
        raise CyclicDependencyError(cycle)
    return ordered


def critical_path_ms(actions: Sequence[Action], durations: Dict[str, int]) -> int:
    """Longest dependency chain, by summed duration. `actions` must be topologically ordered."""
    finish: Dict[str, int] = {}
    for action in actions:
        start = max((finish.get(dep, 0) for dep in action.dependencies), default=0)
        finish[action.id] = start + int(durations.get(action.id, 0))
    return max(finish.values(), default=0)
