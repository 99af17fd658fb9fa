"""Conflict resolution between rules firing on the same trigger."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Sequence

from .models import AutomationRule


@dataclass
class Resolution:
    winners: list[AutomationRule] = field(default_factory=list)
    # (loser, winner) pairs
    losers: list[tuple[AutomationRule, AutomationRule]] = field(default_factory=list)


def _rank(rule: AutomationRule) -> tuple:
    # Highest priority first, then most recently created
    return (rule.priority, rule.created_at)


def resolve_conflicts(rules: Sequence[AutomationRule]) -> Resolution:
    """Pick one value per action target.

    Rules writing the same target with a different value than the group winner
    lose. Rules agreeing with the winner, and rules whose action has no target,
    all run.
    """
    resolution = Resolution()
    groups: dict[tuple, list[AutomationRule]] = defaultdict(list)
    for rule in rules:
        key = rule.action.target_key()
        if key is None:
            resolution.winners.append(rule)
        else:
            groups[key].append(rule)

    for members in groups.values():
        ordered = sorted(members, key=_rank, reverse=True)
        winner = ordered[0]
        resolution.winners.append(winner)
        for rule in ordered[1:]:
            if rule.action.target_value() == winner.action.target_value():
                resolution.winners.append(rule)
            else:
                resolution.losers.append((rule, winner))

    order = {rule.id: i for i, rule in enumerate(rules)}
    resolution.winners.sort(key=lambda r: order[r.id])
    return resolution
