"""Bot worker bridging a GitHub App and the stake-gate backend.

The package ingests GitHub webhooks, forwards normalized events to the
backend, and executes backend-owned outbox actions against the GitHub API.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
