"""Adapters binding the core ports to SQLite, the FISE HTTP API and the SMS gateway."""
