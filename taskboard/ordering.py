"""
Order index algorithms shared by the server transactions and the client
mutator.

Every function here is pure: it takes the current sibling sequence and
returns the new one. The position of an item in the returned list IS its
new `order`, so callers reindex by enumerating the result. Nothing returned
can contain gaps or duplicates.
"""
from typing import Any, Callable, Iterable, List, Sequence, Tuple, TypeVar

from .errors import OrderingError, ValidationFailed

T = TypeVar("T")


def _item_id(item: Any) -> Any:
    return item if isinstance(item, str) else item.id


def check_permutation(
    current_ids: Iterable[str],
    ordered_ids: Sequence[str],
    noun: str = "column",
    parent: str = "project",
) -> None:
    """
    Ensure ordered_ids names every current child exactly once.

    Raises OrderingError before anything is mutated; a partial id list is
    never padded or silently trimmed.
    """
    if not ordered_ids:
        raise OrderingError(f"{noun.capitalize()} IDs are required.")

    requested = list(ordered_ids)
    if len(set(requested)) != len(requested):
        raise OrderingError(f"Duplicate {noun} IDs in reorder request.")

    current = set(current_ids)
    if not set(requested) <= current:
        raise OrderingError(f"Some {noun} IDs do not belong to this {parent}.")
    if not current <= set(requested):
        raise OrderingError(f"All {parent} {noun}s must be included in the reorder.")


def reorder(
    items: Sequence[T],
    ordered_ids: Sequence[str],
    noun: str = "column",
    parent: str = "project",
    key: Callable[[T], str] = _item_id,
) -> List[T]:
    """Return items arranged as ordered_ids (index i → order i)."""
    by_id = {key(item): item for item in items}
    check_permutation(by_id.keys(), ordered_ids, noun=noun, parent=parent)
    return [by_id[item_id] for item_id in ordered_ids]


def clamp_index(index: int, length: int) -> int:
    """Clamp an insertion index into [0, length]."""
    return max(0, min(int(index), length))


def move(
    source: Sequence[T],
    target: Sequence[T],
    item_id: str,
    new_index: int,
    same_parent: bool = False,
    key: Callable[[T], str] = _item_id,
) -> Tuple[List[T], List[T]]:
    """
    Move one item from source into target at new_index.

    The item is removed first and then inserted, so for a same-parent move
    (pass the same sequence twice with same_parent=True) the items between
    the old and new slot shift by exactly one. new_index is clamped to the
    length of the target list after removal. Returns (source, target); for a
    same-parent move both elements are the same list.
    """
    remaining = [item for item in source if key(item) != item_id]
    if len(remaining) == len(source):
        raise ValidationFailed("Task not found in its column.")
    moved = next(item for item in source if key(item) == item_id)

    if same_parent:
        position = clamp_index(new_index, len(remaining))
        remaining.insert(position, moved)
        return remaining, remaining

    destination = [item for item in target if key(item) != item_id]
    position = clamp_index(new_index, len(destination))
    destination.insert(position, moved)
    return remaining, destination


def positions(items: Iterable[Any], key: Callable[[Any], str] = _item_id) -> List[Tuple[str, int]]:
    """(id, order) pairs for a list already in its final arrangement."""
    return [(key(item), index) for index, item in enumerate(items)]


def is_contiguous(orders: Iterable[int]) -> bool:
    """True when orders are exactly 0..n-1 in some arrangement."""
    values = sorted(orders)
    return values == list(range(len(values)))
