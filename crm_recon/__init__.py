"""Reconciliation and bulk-import validation engine for the CRM."""

__version__ = "0.1.0"
