"""Chat endpoint access — the streaming decoder and the client built on it."""
from ariste.api.client import ChatClient
from ariste.api.decoder import DecoderState, StreamDecoder, StreamObserver

__all__ = ["ChatClient", "StreamDecoder", "StreamObserver", "DecoderState"]
