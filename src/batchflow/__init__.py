"""Batchflow: scheduled, cursor-tracked batch data flows."""

__version__ = "0.1.0"
