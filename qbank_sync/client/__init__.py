"""Client for remote qbank-sync services."""

from .ws_client import WebserviceClient, WebserviceError

__all__ = ["WebserviceClient", "WebserviceError"]
