import logging
import typing

from college_tracker.models.collaboration_models import (
    CollaboratorLinkModel,
    CollaboratorPermissionsModel,
    CollaboratorRelationship,
    PermissionKey,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

PERMISSION_KEYS: tuple[PermissionKey, ...] = typing.get_args(PermissionKey)

DEFAULT_COUNSELOR_PERMISSIONS = CollaboratorPermissionsModel(
    viewTasks=True,
    manageTasks=True,
    viewEssays=True,
    editEssays=True,
    viewCalendar=True,
    manageCalendar=True,
    viewFinancial=True,
    approveAiSuggestions=True,
)

# Parents are view-only by default
DEFAULT_PARENT_PERMISSIONS = CollaboratorPermissionsModel(
    viewTasks=True,
    manageTasks=False,
    viewEssays=True,
    editEssays=False,
    viewCalendar=True,
    manageCalendar=False,
    viewFinancial=True,
    approveAiSuggestions=False,
)


def build_default_permissions(relationship: CollaboratorRelationship) -> CollaboratorPermissionsModel:
    """Returns a fresh copy of the default bundle for the given relationship."""
    if relationship == "parent":
        return DEFAULT_PARENT_PERMISSIONS.model_copy()
    return DEFAULT_COUNSELOR_PERMISSIONS.model_copy()


def sanitize_permissions(
    permissions: typing.Optional[typing.Mapping[str, typing.Any]] = None,
    relationship: CollaboratorRelationship = "counselor",
) -> CollaboratorPermissionsModel:
    """
    Turns a (possibly partial or malformed) client payload into a complete permission set.

    Keys that are absent fall back to the relationship's default bundle and unknown keys are
    dropped. Any value that is present is coerced with bool(), so an explicit null is False.
    Never raises.
    """
    defaults = build_default_permissions(relationship)
    if not permissions:
        return defaults

    sanitized: dict[str, bool] = {}
    for key in PERMISSION_KEYS:
        if key not in permissions:
            sanitized[key] = getattr(defaults, key)
        else:
            sanitized[key] = bool(permissions[key])

    dropped = set(permissions.keys()) - set(PERMISSION_KEYS)
    if dropped:
        _LOGGER.debug(f"Dropping unknown permission keys: {sorted(dropped)}")

    return CollaboratorPermissionsModel(**sanitized)


def has_permission(link: typing.Optional[CollaboratorLinkModel], permission: PermissionKey) -> bool:
    if link is None:
        return False
    return link.permissions.allows(permission)
