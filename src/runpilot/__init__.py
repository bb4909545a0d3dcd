"""Runpilot: step-driven agent runs with approval gates and recurring autopilots."""

__version__ = "0.1.0"
