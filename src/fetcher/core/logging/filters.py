"""
Log filters: per-thread correlation id and static extra fields.
"""

import logging
import threading
from typing import Any, Dict, Optional

_correlation_id_storage = threading.local()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation id for the current thread."""
    _correlation_id_storage.value = correlation_id


def get_correlation_id() -> Optional[str]:
    return getattr(_correlation_id_storage, 'value', None)


def clear_correlation_id() -> None:
    if hasattr(_correlation_id_storage, 'value'):
        del _correlation_id_storage.value


class CorrelationIdFilter(logging.Filter):
    """
    Adds ``correlation_id`` to records logged while a request executes.

    Client.execute() sets it to the request id and clears it when done.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = get_correlation_id()
        if correlation_id and not hasattr(record, 'correlation_id'):
            record.correlation_id = correlation_id
        return True


class ExtraFieldsFilter(logging.Filter):
    """
    Adds static fields (service, environment, ...) to every record.

    Fields already present on the record win.
    """

    def __init__(self, extra_fields: Dict[str, Any]):
        super().__init__()
        self.extra_fields = dict(extra_fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
