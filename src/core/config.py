"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for the core pipeline."""

    window_seconds: float = 300.0


@dataclass(frozen=True)
class ProcessingConfig:
    """Per-event budgets and body length bounds."""

    event_timeout_seconds: float = 30.0
    call_timeout_seconds: float = 8.0
    min_length: int = 10
    max_length: int = 500


@dataclass(frozen=True)
class DirectoryConfig:
    timeout_seconds: float = 5.0
    max_concurrency: int = 5


@dataclass(frozen=True)
class RetryConfig:
    """Backend sync retry policy: total attempts and fixed delay between them."""

    attempts: int = 3
    delay_seconds: float = 2.0
    attempt_timeout_seconds: float = 8.0
