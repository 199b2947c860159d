"""
greenloop.errors — Error Taxonomy
==================================

Every failure the engine surfaces to its callers is one of these.
Expected outcomes (a badge the user is not yet eligible for, a credit that
was already applied) are returned as values, never raised.

Propagation rules:

* :class:`ValidationError` / :class:`NotFoundError` — terminal for the
  single operation; hand them to the caller unchanged.
* :class:`ConcurrencyError` — the per-user serialization point could not be
  acquired in time.  The core never retries on its own; callers back off
  and retry (see :mod:`greenloop.services.retry`).
* :class:`ConflictError` — a storage-layer uniqueness violation that the
  idempotent paths could not explain.
"""

from __future__ import annotations


class GreenloopError(Exception):
    """Base class for all engine errors."""


class ValidationError(GreenloopError):
    """Malformed or out-of-range input."""


class InvalidInputError(ValidationError):
    """Input rejected by the points calculator."""


class NotFoundError(GreenloopError):
    """A referenced action, category, badge or user does not exist."""

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class ConcurrencyError(GreenloopError):
    """The ledger serialization point was unavailable within the timeout."""


class ConflictError(GreenloopError):
    """Unexpected uniqueness violation surfaced by the storage layer."""
