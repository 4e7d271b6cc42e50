"""
Relational storage for the workload dashboard.

- models: SQLAlchemy declarative models
- serializers: JSON shapes for API responses and reports
- session: engine/session lifecycle, retrying execution and health checks
"""

from .models import (
    Base,
    User,
    Category,
    Activity,
    ActivityUpdate,
    ActivityAssignment,
    USER_ROLES,
    ACTIVITY_STATUSES,
    ASSIGNMENT_TYPES,
    ASSIGNMENT_STATUSES,
    UNPLANNED_CATEGORY_ID,
    new_cuid,
    utcnow,
    iso
)

from .serializers import (
    serialize_user,
    serialize_category,
    serialize_update,
    serialize_activity,
    serialize_assignment,
    load_snapshot,
    activity_page
)

from .session import (
    get_db,
    new_session,
    init_db,
    drop_db,
    configure,
    with_db,
    with_db_critical,
    health_check,
    seed_defaults
)

__all__ = [
    'Base',
    'User',
    'Category',
    'Activity',
    'ActivityUpdate',
    'ActivityAssignment',
    'USER_ROLES',
    'ACTIVITY_STATUSES',
    'ASSIGNMENT_TYPES',
    'ASSIGNMENT_STATUSES',
    'UNPLANNED_CATEGORY_ID',
    'new_cuid',
    'utcnow',
    'iso',
    'get_db',
    'new_session',
    'init_db',
    'drop_db',
    'configure',
    'with_db',
    'with_db_critical',
    'health_check',
    'seed_defaults',
    'serialize_user',
    'serialize_category',
    'serialize_update',
    'serialize_activity',
    'serialize_assignment',
    'load_snapshot',
    'activity_page'
]
