"""FastAPI seam consumed by outer HTTP handlers."""
