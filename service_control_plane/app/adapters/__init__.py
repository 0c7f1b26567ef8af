"""Adapters for calls leaving the control plane.

Everything that talks HTTP to workloads lives here: the retrying client,
the liveness prober built on it, and the client for the OpenAI-compatible
APIs of the inference engines. Transport failures are translated into the
local exception types before they reach the routes.
"""
