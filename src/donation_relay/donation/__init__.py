"""Donation classification and admission package."""

__all__ = [
    "AdmissionPipeline",
    "AdmissionResult",
    "CLASSIFICATION_RULES",
    "classify",
    "detect",
    "unwrap_envelope",
]

from .admission import AdmissionPipeline, AdmissionResult
from .classifier import CLASSIFICATION_RULES, classify, detect, unwrap_envelope
