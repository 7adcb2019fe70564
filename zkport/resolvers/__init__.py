"""Compatibility resolution and I/O sequencing."""

from .compatibility_resolver import CompatibilityResolver
from .hint_classifier import Channel, HintClassifier
from .io_sequencer import IOSequencer

__all__ = ["CompatibilityResolver", "HintClassifier", "Channel", "IOSequencer"]
