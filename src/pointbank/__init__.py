"""Points ledger with role-gated dashboards."""

from .api import app

__all__ = ["app"]
