"""Validated records exchanged with the classifier and the catalog store."""
from .candidate import Candidate, Provenance, parse_candidates
from .catalog_record import CatalogRecordRequest, Identification, build_record_request

__all__ = [
    "Candidate",
    "Provenance",
    "parse_candidates",
    "CatalogRecordRequest",
    "Identification",
    "build_record_request",
]
