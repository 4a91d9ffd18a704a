"""Schema package exports."""

from .delivery_logs import DeliveryLogRecord
from .kv_blobs import KeyValueBlob

__all__ = ["DeliveryLogRecord", "KeyValueBlob"]
