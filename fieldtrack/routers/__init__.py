from fieldtrack.routers import auth, calendar_events, children, groups, join_requests, notifications, progress, sessions

__all__ = [
    'auth',
    'calendar_events',
    'children',
    'groups',
    'join_requests',
    'notifications',
    'progress',
    'sessions',
]
