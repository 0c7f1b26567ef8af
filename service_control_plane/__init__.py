"""Control plane service for model serving endpoints."""
