"""SQL-backed implementations of the content store and authorization ports."""

from .sql_authorization import SqlAuthorization, create_token, grant_capability, user_for_token
from .sql_store import SqlContentStore

__all__ = [
    "SqlAuthorization",
    "SqlContentStore",
    "create_token",
    "grant_capability",
    "user_for_token",
]
