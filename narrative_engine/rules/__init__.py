"""Data-driven behaviour tables for emotions and relationships."""

from .emotions import Emotion, parse_emotions, choose_strategy
from .relationships import RoleKind, StatusTone, infer_metrics, clamp_metrics

__all__ = [
    "Emotion",
    "parse_emotions",
    "choose_strategy",
    "RoleKind",
    "StatusTone",
    "infer_metrics",
    "clamp_metrics",
]
