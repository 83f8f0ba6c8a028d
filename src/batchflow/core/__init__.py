"""Core infrastructure: canonical JSON, configuration, logging and storage."""

from batchflow.core.canonical import CANONICAL_VERSION, canonical_json, stable_hash
from batchflow.core.config import BatchflowSettings, load_settings
from batchflow.core.logging import configure_logging, get_logger

__all__ = [
    "CANONICAL_VERSION",
    "BatchflowSettings",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_settings",
    "stable_hash",
]
