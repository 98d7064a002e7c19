"""Application services - the scan pipeline stages plus prune and audit."""

from cardcatalog.application.services.audit_service import AuditService
from cardcatalog.application.services.fingerprint_service import FingerprintService
from cardcatalog.application.services.index_publisher import IndexPublisher
from cardcatalog.application.services.metadata_extractor import MetadataExtractor
from cardcatalog.application.services.path_enumerator import PathEnumerator
from cardcatalog.application.services.prune_service import PruneService
from cardcatalog.application.services.reconciler import Reconciler
from cardcatalog.application.services.resolver import Resolver

# Hey future me - ScanPipeline wires everything above together. Build it through
# cardcatalog.bootstrap (CLI and API both do) so the ONE shared RateLimiter is
# created in exactly one place.
from cardcatalog.application.services.scan_pipeline import ScanPipeline

__all__ = [
    "AuditService",
    "FingerprintService",
    "IndexPublisher",
    "MetadataExtractor",
    "PathEnumerator",
    "PruneService",
    "Reconciler",
    "Resolver",
    "ScanPipeline",
]
