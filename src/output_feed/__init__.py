"""Output feed: submit outputs and browse them live over MCP."""

from .client import RecordStoreClient, SubmissionClient
from .errors import DecodeError, NetworkError, SubmissionError, ValidationError
from .feed import FeedController
from .models import FeedFilter, Record
from .realtime import RealtimeChannel
from .server import main

__all__ = [
    "main",
    "RecordStoreClient",
    "SubmissionClient",
    "RealtimeChannel",
    "FeedController",
    "FeedFilter",
    "Record",
    "ValidationError",
    "NetworkError",
    "DecodeError",
    "SubmissionError",
]

__version__ = "0.1.0"
