from toolgate.server.transport.base import SinkEvent, Transport, TransportKind, decode_message

__all__ = ["SinkEvent", "Transport", "TransportKind", "decode_message"]
