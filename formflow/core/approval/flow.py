"""Approval flow definitions.

A flow is the ordered list of approval levels authored on a form template.
Each level is bound to exactly one approver and levels run 1..N without gaps.
An empty flow means the form needs no approval.
"""

from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional
from uuid import UUID

from formflow.core.exceptions import ValidationError


class ApprovalLevel(NamedTuple):
    """One position in an approval chain."""
    level: int
    approver_id: UUID
    name: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "approver_id": str(self.approver_id),
            "name": self.name,
            "description": self.description,
        }


def same_identity(left: Any, right: Any) -> bool:
    """Compare two identity references regardless of UUID/str representation."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _as_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid approver id: {value!r}") from e


class ApprovalFlow:
    """Ordered, validated sequence of approval levels."""

    def __init__(self, levels: Optional[Iterable[ApprovalLevel]] = None):
        self._levels: List[ApprovalLevel] = sorted(levels or [], key=lambda l: l.level)
        self._by_level: Dict[int, ApprovalLevel] = {l.level: l for l in self._levels}

    @classmethod
    def from_levels(cls, authored: Optional[Iterable[Dict[str, Any]]]) -> "ApprovalFlow":
        """
        Build a flow from levels as authored in the form builder.

        Position in the list decides the level number, so whatever level
        values the client sent are replaced by ``index + 1``.

        Raises:
            ValidationError: If an entry has no approver
        """
        levels = []
        for index, entry in enumerate(authored or []):
            approver = entry.get("approver_id") or entry.get("approverId")
            if not approver:
                raise ValidationError(f"Level {index + 1} has no approver")
            levels.append(ApprovalLevel(
                level=index + 1,
                approver_id=_as_uuid(approver),
                name=entry.get("name") or f"Level {index + 1}",
                description=entry.get("description") or "",
            ))
        return cls(levels)

    @classmethod
    def from_stored(cls, stored: Optional[Iterable[Dict[str, Any]]]) -> "ApprovalFlow":
        """
        Load a flow persisted as JSON, keeping stored level numbers.

        The result is validated so that a corrupted template cannot route
        approvals to the wrong person.
        """
        levels = [
            ApprovalLevel(
                level=int(entry["level"]),
                approver_id=_as_uuid(entry["approver_id"]),
                name=entry.get("name") or "",
                description=entry.get("description") or "",
            )
            for entry in (stored or [])
        ]
        flow = cls(levels)
        flow.validate()
        return flow

    def validate(self) -> None:
        """
        Check flow invariants.

        Raises:
            ValidationError: If levels are not contiguous from 1 or repeat
        """
        seen = set()
        for entry in self._levels:
            if entry.level < 1:
                raise ValidationError(f"Approval level must be positive, got {entry.level}")
            if entry.level in seen:
                raise ValidationError(f"Approval level {entry.level} is defined twice")
            if entry.approver_id is None:
                raise ValidationError(f"Approval level {entry.level} has no approver")
            seen.add(entry.level)

        expected = list(range(1, len(self._levels) + 1))
        if [l.level for l in self._levels] != expected:
            raise ValidationError(
                f"Approval levels must be contiguous from 1, got {[l.level for l in self._levels]}"
            )

    def level(self, number: int) -> Optional[ApprovalLevel]:
        """Get the level entry for a level number, if it exists."""
        return self._by_level.get(number)

    def level_for(self, actor_id: Any) -> Optional[ApprovalLevel]:
        """Get the first level bound to an actor."""
        levels = self.levels_for(actor_id)
        return levels[0] if levels else None

    def levels_for(self, actor_id: Any) -> List[ApprovalLevel]:
        """Every level bound to an actor, in order. One approver may hold several."""
        return [entry for entry in self._levels if same_identity(entry.approver_id, actor_id)]

    def approver_ids(self) -> List[UUID]:
        return [l.approver_id for l in self._levels]

    def to_list(self) -> List[Dict[str, Any]]:
        return [l.to_dict() for l in self._levels]

    def __len__(self) -> int:
        return len(self._levels)

    def __iter__(self) -> Iterator[ApprovalLevel]:
        return iter(self._levels)

    def __bool__(self) -> bool:
        return bool(self._levels)

    def __repr__(self) -> str:
        return f"<ApprovalFlow levels={len(self._levels)}>"
