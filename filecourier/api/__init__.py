"""
API Module - Progress Events

Event bus and the FastAPI service that fans events out to monitoring clients.
"""

from .events import (
    EventBus, Subscription, TransferEvent,
    Started, Finished, Failed, Received,
    encode_event, DEFAULT_CAPACITY,
)
from .rest import create_app, EventServer

__all__ = [
    'EventBus',
    'Subscription',
    'TransferEvent',
    'Started',
    'Finished',
    'Failed',
    'Received',
    'encode_event',
    'DEFAULT_CAPACITY',
    'create_app',
    'EventServer',
]
