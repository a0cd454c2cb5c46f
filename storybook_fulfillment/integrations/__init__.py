"""
Clients for the storage, order table, print provider and email collaborators.
"""

from .creations import CreationRecord, CreationSource, InMemoryCreationSource, SupabaseCreationSource
from .notifications import (
    BOOK_SHIPPED_TEMPLATE,
    EBOOK_DELIVERY_TEMPLATE,
    EmailFunctionNotifier,
    LoggingNotifier,
    Notifier,
)
from .postgrest import PostgrestClient
from .print_provider import LuluPrintProvider, ManufacturingJob, PrintProvider, SubmittedJob
from .storage import ArtifactStorage, InMemoryStorage, InMemoryStorageAdapter, SupabaseStorage

__all__ = [
    "ArtifactStorage",
    "BOOK_SHIPPED_TEMPLATE",
    "CreationRecord",
    "CreationSource",
    "EBOOK_DELIVERY_TEMPLATE",
    "EmailFunctionNotifier",
    "InMemoryCreationSource",
    "InMemoryStorage",
    "InMemoryStorageAdapter",
    "LoggingNotifier",
    "LuluPrintProvider",
    "ManufacturingJob",
    "Notifier",
    "PostgrestClient",
    "PrintProvider",
    "SubmittedJob",
    "SupabaseCreationSource",
    "SupabaseStorage",
]
