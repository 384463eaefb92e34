"""SQLAlchemy models for PipeVault."""

from pipevault.models.audit import AdminAuditLog, RackOccupancyAdjustment
from pipevault.models.company import Company
from pipevault.models.document import Document
from pipevault.models.inventory import Pipe
from pipevault.models.notification import NotificationQueue
from pipevault.models.storage_request import StorageRequest
from pipevault.models.truck_load import Shipment, TruckLoad
from pipevault.models.yard import Rack, Yard, YardArea

__all__ = [
    "AdminAuditLog",
    "Company",
    "Document",
    "NotificationQueue",
    "Pipe",
    "Rack",
    "RackOccupancyAdjustment",
    "Shipment",
    "StorageRequest",
    "TruckLoad",
    "Yard",
    "YardArea",
]
