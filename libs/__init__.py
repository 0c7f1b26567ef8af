"""Shared libraries for the control plane.

Subpackages:
- ``libs.common``: configuration, logging, metrics, errors, responses and auth.

Usage:
- Import stable, reusable functionality from here to keep service code lean.

Notes:
- Avoid service-specific logic; keep modules cohesive and broadly useful.
"""
