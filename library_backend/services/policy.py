"""Role hierarchy and record-ownership rules.

Every user-management endpoint asks the same question: may an actor with
role X perform action A on a user whose role is Y? The answer lives in a
single table instead of being repeated as inline conditionals.
"""
import enum
from typing import Dict, FrozenSet, Tuple

from library_backend.models.enums import UserRole
from library_backend.services.errors import ForbiddenError

STAFF_ROLES = (UserRole.LIBRARIAN, UserRole.ADMIN, UserRole.SUPER_ADMIN)
ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


class UserAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    ASSIGN_ROLE = "assign role to"


_ALL_ROLES = frozenset(UserRole)
_BELOW_ADMIN = frozenset({UserRole.USER, UserRole.LIBRARIAN})

# actor role -> action -> target roles the actor may act upon
_CAPABILITIES: Dict[UserRole, Dict[UserAction, FrozenSet[UserRole]]] = {
    UserRole.SUPER_ADMIN: {action: _ALL_ROLES for action in UserAction},
    UserRole.ADMIN: {action: _BELOW_ADMIN for action in UserAction},
    UserRole.LIBRARIAN: {},
    UserRole.USER: {},
}

POLICY: Dict[Tuple[UserRole, UserRole, UserAction], bool] = {
    (actor, target, action): target in _CAPABILITIES[actor].get(action, frozenset())
    for actor in UserRole
    for target in UserRole
    for action in UserAction
}


def is_allowed(actor_role: UserRole, target_role: UserRole, action: UserAction) -> bool:
    return POLICY[(actor_role, target_role, action)]


def ensure_allowed(actor_role: UserRole, target_role: UserRole, action: UserAction) -> None:
    """Raise Forbidden unless the policy table grants the action."""
    if not is_allowed(actor_role, target_role, action):
        raise ForbiddenError(
            f"{actor_role.value} cannot {action.value} {target_role.value} users"
        )


def is_staff(role: UserRole) -> bool:
    return role in STAFF_ROLES


def ensure_can_view(actor, owner_id: str, what: str = "records") -> None:
    """Members may only read their own records; staff may read anyone's."""
    if not is_staff(actor.role) and actor.id != owner_id:
        raise ForbiddenError(f"You can only view your own {what}")
