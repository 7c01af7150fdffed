"""Cross-driver content migration: records, persistence, orchestration."""

from folio.migration.models import (
    MigrationFailure,
    MigrationPreview,
    MigrationRecord,
    MigrationStatus,
    VerificationResult,
)
from folio.migration.orchestrator import MigrationOrchestrator
from folio.migration.store import MigrationStore

__all__ = [
    "MigrationFailure",
    "MigrationOrchestrator",
    "MigrationPreview",
    "MigrationRecord",
    "MigrationStatus",
    "MigrationStore",
    "VerificationResult",
]
