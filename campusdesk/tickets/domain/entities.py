"""
Ticket Domain Entities
======================

Actor identity and the result objects returned by lifecycle operations.
"""

from dataclasses import dataclass
from typing import Any, Optional

from campusdesk.config import Role


@dataclass(frozen=True)
class Actor:
    """Caller identity as supplied by the identity collaborator."""
    id: str
    role: Role

    @property
    def is_elevated(self) -> bool:
        return self.role.is_elevated

    def owns(self, ticket: Any) -> bool:
        return ticket.created_by == self.id


@dataclass
class CounterResult:
    """A mutated ticket plus a soft-limit counter and its warning."""
    ticket: Any
    warning: bool = False
    warning_message: Optional[str] = None


@dataclass
class ExtendTATResult(CounterResult):
    tat_extensions: int = 0


@dataclass
class ReopenResult(CounterResult):
    reopen_count: int = 0


@dataclass
class ForwardResult(CounterResult):
    forward_count: int = 0


def soft_limit_warning(count: int, maximum: int, what: str) -> Optional[str]:
    """Message for a counter that went past its soft maximum, else None."""
    if count <= maximum:
        return None
    return f"Ticket has been {what} {count} times (maximum {maximum})"
