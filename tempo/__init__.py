# tempo/__init__.py
"""
Calendar assistant backend.

HTTP entrypoint is ``tempo.main:app``; migrations live in ``alembic/``.
"""
__all__: list[str] = ["main"]
