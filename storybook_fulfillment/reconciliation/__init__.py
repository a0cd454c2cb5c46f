"""
Print-provider webhook reconciliation.
"""

from .listener import ProviderEvent, ReconciliationListener, ReconciliationOutcome, ReconciliationResult
from .signature import SIGNATURE_HEADER, compute_signature, verify_signature
from .status_map import DEFAULT_STATUS_MAP_PATH, ProviderStatusMap, StatusMapping

__all__ = [
    "DEFAULT_STATUS_MAP_PATH",
    "ProviderEvent",
    "ProviderStatusMap",
    "ReconciliationListener",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "SIGNATURE_HEADER",
    "StatusMapping",
    "compute_signature",
    "verify_signature",
]
