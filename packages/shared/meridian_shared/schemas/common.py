from enum import Enum

class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

DEFAULT_ROLE = Role.MEMBER

class OrganizationSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"

# Plain-string views, used for check constraints and payload filtering
ROLE_VALUES: frozenset[str] = frozenset(r.value for r in Role)
SIZE_VALUES: frozenset[str] = frozenset(s.value for s in OrganizationSize)
