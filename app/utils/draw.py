import random
from collections.abc import Sequence
from typing import Protocol

from app.core.exceptions import EmptyPoolError, ZeroWeightError


class Weighted(Protocol):
    @property
    def weight(self) -> float: ...


class RandomSource(Protocol):
    def random(self) -> float: ...


def total_weight(items: Sequence[Weighted]) -> float:
    return sum(item.weight for item in items)


def draw[T: Weighted](items: Sequence[T], rng: RandomSource | None = None) -> T:
    """Pick one item with probability proportional to its weight.

    Weights do not need to sum to anything in particular; they are normalised
    against the pool total. The pool is scanned in the given order and the first
    item whose running total reaches ``r`` wins, so a value landing exactly on a
    boundary always resolves to the earlier item. If float rounding lets the
    scan fall through, the last item is returned.

    Raises:
        EmptyPoolError: If ``items`` is empty.
        ZeroWeightError: If the weights do not add up to a positive number.
    """
    if not items:
        raise EmptyPoolError("此卡池沒有可抽取的物品")

    total = total_weight(items)
    if total <= 0:
        raise ZeroWeightError("卡池中的機率無效")

    r = (rng or random).random() * total
    cumulative = 0.0
    for item in items:
        cumulative += item.weight
        if cumulative >= r:
            return item

    return items[-1]


def probabilities(items: Sequence[Weighted]) -> list[float]:
    """Normalised share of each item, in pool order."""
    total = total_weight(items)
    if total <= 0:
        return [0.0 for _ in items]
    return [item.weight / total for item in items]
