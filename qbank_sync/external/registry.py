"""
Endpoint registry for the qbank-sync webservice functions.

Each function is a handler plus its declared parameter schema, return schema
and required capability. Handlers register themselves with ``@register`` when
their module is imported.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from qbank_sync.core.access import AccessGuard
from qbank_sync.core.errors import ContentStoreError, QbankSyncError, SchemaError
from qbank_sync.core.ports import ContentStorePort, Scope
from qbank_sync.external.validator import validate_parameters, validate_returns


@dataclass
class CallContext:
    """Everything a handler may touch during one call."""

    store: ContentStorePort
    guard: AccessGuard
    upload_dir: Path
    capability: str = ""

    def require(self, scope: Scope) -> None:
        """Require the calling function's capability at ``scope``."""
        self.guard.require_capability(scope, self.capability)


@dataclass(frozen=True)
class ExternalFunction:
    name: str
    params: type[BaseModel]
    returns: type[BaseModel]
    handler: Callable[[CallContext, Any], Any]
    capability: str
    description: str
    type: str = "read"


# Function registry - populated by @register decorator
FUNCTIONS: dict[str, ExternalFunction] = {}


def register(
    name: str,
    *,
    params: type[BaseModel],
    returns: type[BaseModel],
    capability: str,
    description: str,
    type: str = "read",
):
    """Decorator to register a webservice function handler."""

    def decorator(fn):
        FUNCTIONS[name] = ExternalFunction(
            name=name,
            params=params,
            returns=returns,
            handler=fn,
            capability=capability,
            description=description,
            type=type,
        )
        return fn

    return decorator


def get_function(name: str) -> ExternalFunction:
    """Look up a registered function by its wsfunction name."""
    function = FUNCTIONS.get(name)
    if function is None:
        raise SchemaError(["wsfunction"], f"Can't find function in webservice registry: {name}")
    return function


def call(name: str, raw_params: Any, context: CallContext) -> dict[str, Any]:
    """
    Validate, dispatch and shape one webservice call.

    Errors from the store or file system that are not already part of the
    error taxonomy are wrapped as ContentStoreError.
    """
    function = get_function(name)
    params = validate_parameters(function.params, raw_params)
    context = replace(context, capability=function.capability)
    logger.info("Calling {} ({})", name, function.type)

    try:
        result = function.handler(context, params)
    except QbankSyncError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"{name} failed in content store: {e}")
        raise ContentStoreError("Error writing to database", str(e)) from e
    except OSError as e:
        logger.error(f"{name} failed on file access: {e}")
        raise ContentStoreError("Error accessing file", str(e)) from e

    return validate_returns(function.returns, result)


def describe_functions() -> list[dict[str, str]]:
    """Summaries of every registered function, sorted by name."""
    return [
        {
            "name": f.name,
            "description": f.description,
            "type": f.type,
            "capability": f.capability,
        }
        for f in sorted(FUNCTIONS.values(), key=lambda f: f.name)
    ]
