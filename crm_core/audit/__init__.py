"""
Audit Module

Change trail of tenant records.
"""

from .service import AuditAction, AuditLog, AuditService

__all__ = ["AuditAction", "AuditLog", "AuditService"]
