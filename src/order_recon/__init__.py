"""Reconcile POS order exports against delivery and booking platform exports."""

__version__ = "0.1.0"
