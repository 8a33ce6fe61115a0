"""A/B testing of a TCP request service against its digital twin: servers, wire format and client."""

__version__ = "0.1.0"
__all__ = ["__version__"]