"""Backend boundary: request/response model, wire codec, HTTP transport and the invoker."""

from .base import Backend, BackendRequest, BackendResponse, StopReason
from .codec import decode_response, encode_block, encode_message, encode_request, encode_tool
from .http import HttpBackend, classify_status
from .invoker import BackendInvoker

__all__ = [
    "Backend",
    "BackendInvoker",
    "BackendRequest",
    "BackendResponse",
    "HttpBackend",
    "StopReason",
    "classify_status",
    "decode_response",
    "encode_block",
    "encode_message",
    "encode_request",
    "encode_tool",
]
