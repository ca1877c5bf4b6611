"""Client side of the converter: routing, the server API client, the local engine and the session."""
from .api import ConversionApiClient
from .engine import MediaEngine
from .router import ConversionRouter, route
from .session import ConversionSession

__all__ = ["ConversionApiClient", "ConversionRouter", "ConversionSession", "MediaEngine", "route"]
