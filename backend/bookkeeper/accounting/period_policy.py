"""Role-based permissions for accounting period operations.

``reopen`` (undo a close) is restricted to admins, while ``activate`` (make
sure a period is open) is also available to accountants so they can switch the
working period. Both end in the same state change.
"""

import enum

from bookkeeper.organizations.models import Role


class PeriodOperation(enum.StrEnum):
    LIST = "list"
    GET = "get"
    GET_ACTIVE = "get_active"
    CREATE = "create"
    UPDATE = "update"
    CLOSE = "close"
    DELETE = "delete"
    REOPEN = "reopen"
    ACTIVATE = "activate"


_ALL = frozenset(Role)
_EDITORS = frozenset({Role.ADMIN, Role.ACCOUNTANT})
_ADMINS = frozenset({Role.ADMIN})

PERMISSIONS: dict[PeriodOperation, frozenset[Role]] = {
    PeriodOperation.LIST: _ALL,
    PeriodOperation.GET: _ALL,
    PeriodOperation.GET_ACTIVE: _ALL,
    PeriodOperation.CREATE: _EDITORS,
    PeriodOperation.UPDATE: _EDITORS,
    PeriodOperation.CLOSE: _EDITORS,
    PeriodOperation.DELETE: _ADMINS,
    PeriodOperation.REOPEN: _ADMINS,
    PeriodOperation.ACTIVATE: _EDITORS,
}


def is_allowed(role: Role, operation: PeriodOperation) -> bool:
    return role in PERMISSIONS[operation]
