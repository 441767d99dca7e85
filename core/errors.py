"""
Error taxonomy for the live emotion service.
"""
from __future__ import annotations


class InvalidOfferError(ValueError):
    """Malformed session-description offer; answered with a 4xx, no connection is created."""


class NegotiationError(RuntimeError):
    """ICE/transport failure while building the answer."""


class ModelNotFoundError(FileNotFoundError):
    """None of the candidate emotion-model locations exist."""

    def __init__(self, candidates):
        self.candidates = [str(c) for c in candidates]
        super().__init__("Emotion model not found. Expected at one of: " + ", ".join(self.candidates))


class EngineInitError(RuntimeError):
    """Detector or classifier construction failed; no frame can be served."""
