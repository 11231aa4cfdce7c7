"""Governance module for MedPath.

Provides the hash-chained audit trail for graph and referral changes.
"""

from medpath.governance.audit import AuditEntry, AuditLogger

__all__ = ["AuditEntry", "AuditLogger"]
