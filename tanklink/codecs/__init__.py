"""Wire codecs for the tank controller websocket."""

from .envelope_codec import coerce_envelope, decode, decode_inbound, encode
from .envelope_models import InboundMessage, MessageEnvelope

__all__ = [
    "InboundMessage",
    "MessageEnvelope",
    "coerce_envelope",
    "decode",
    "decode_inbound",
    "encode",
]
