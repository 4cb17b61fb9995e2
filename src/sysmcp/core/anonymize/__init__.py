"""PII anonymization: engine, mapping persistence, file-path helpers."""

from sysmcp.core.anonymize.engine import (
    AnonymizationMapping,
    AnonymizationRule,
    PiiAnonymizer,
    default_rules,
    make_token,
)
from sysmcp.core.anonymize.paths import PathAnonymizer
from sysmcp.core.anonymize.store import MappingStore

__all__ = [
    "AnonymizationMapping",
    "AnonymizationRule",
    "MappingStore",
    "PathAnonymizer",
    "PiiAnonymizer",
    "default_rules",
    "make_token",
]
