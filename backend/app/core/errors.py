"""Error taxonomy shared by the stores, the vendor adapters and the API layer."""

from typing import Any


class ConfigurationError(Exception):
    """Rejected before any network call: registry miss, limits, bad hosts, missing keys."""


class VendorCapabilityError(ConfigurationError):
    pass


class UnknownConversationError(KeyError):
    def __init__(self, conversation_id: str):
        super().__init__(conversation_id)
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return f"Conversation not found: {self.conversation_id}"


class VendorError(Exception):
    """Failure attributable to a vendor backend. `vendor` is a tag like 'Ollama::pull'."""

    def __init__(self, vendor: str, message: str, path: str = ""):
        self.vendor = vendor
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"[{vendor}]{where} {message}")


class TransportError(VendorError):
    def __init__(self, vendor: str, message: str, path: str = "", status_code: int | None = None):
        super().__init__(vendor, message, path)
        self.status_code = status_code


class ProtocolError(VendorError):
    def __init__(self, vendor: str, message: str, path: str = "", payload: Any = None):
        super().__init__(vendor, message, path)
        self.payload_shape = describe_shape(payload)


def describe_shape(payload: Any, depth: int = 2) -> Any:
    """Type skeleton of a payload, so errors can show what came back without leaking content."""
    if isinstance(payload, dict):
        if depth <= 0:
            return "object"
        return {k: describe_shape(v, depth - 1) for k, v in payload.items()}
    if isinstance(payload, list):
        if depth <= 0 or not payload:
            return "array"
        return [describe_shape(payload[0], depth - 1)]
    if payload is None:
        return "null"
    return type(payload).__name__
