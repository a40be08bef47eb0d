from .stores import Store
from .customers import Customer, PointHistory, POINT_HISTORY_TYPES, SOURCE_HISTORY_UNIQUE_CONSTRAINT
from .auth import User, Role, UserRole, SessionToken

__all__ = [
    'Store',
    'Customer', 'PointHistory', 'POINT_HISTORY_TYPES', 'SOURCE_HISTORY_UNIQUE_CONSTRAINT',
    'User', 'Role', 'UserRole', 'SessionToken',
]
