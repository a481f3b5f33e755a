"""
Webservice functions exposed by qbank-sync.

Importing this package loads every handler module so the registry is
complete before the first call is dispatched.
"""

from .registry import FUNCTIONS, CallContext, ExternalFunction, call, describe_functions, get_function, register

# Import handlers to trigger registration
from . import handlers  # noqa: E402,F401

__all__ = [
    "FUNCTIONS",
    "CallContext",
    "ExternalFunction",
    "call",
    "describe_functions",
    "get_function",
    "register",
]
