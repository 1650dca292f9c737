"""Transport-neutral protocol facade, request payloads and response envelopes."""

from .gateway import AucipGateway, ProtocolResponse
from .payloads import BatchPayload, ExecutePayload, SubscribePayload, parse_payload

__all__ = [
    "AucipGateway",
    "BatchPayload",
    "ExecutePayload",
    "ProtocolResponse",
    "SubscribePayload",
    "parse_payload",
]
