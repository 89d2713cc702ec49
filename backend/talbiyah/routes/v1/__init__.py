# backend/talbiyah/routes/v1/__init__.py
"""Versioned API routers mounted under /api/v1."""
