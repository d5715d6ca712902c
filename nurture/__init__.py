"""Autonomous lead nurturing: deal health, guardrails and batch scheduling."""

__version__ = "1.0.0"
