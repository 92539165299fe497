"""Audit logging package."""

from docengine.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
