"""Failure taxonomy shared by the core and its adapters."""

from __future__ import annotations


class FiseError(Exception):
    """Base class for protocol failures. None of them is process-fatal."""


class LookupFailure(FiseError):
    """Directory lookup could not produce a usable record."""


class BackendSyncFailure(FiseError):
    """A single delivery attempt to the system of record failed."""


class TransportFailure(FiseError):
    """The SMS transport refused or failed to send a message."""
