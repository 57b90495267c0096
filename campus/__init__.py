"""
Campus portal application package.

Layered architecture:

  database.py:       SQLAlchemy models and storage helpers (pure I/O).
  campus/services/:  business logic: validation, theme-permission
                     reconciliation, borrow lookups.
  portal_web.py:     Flask routes that resolve the caller, open a session
                     and hand it to the services.

Services receive their collaborators (the ``database`` module, the funnel
client) in ``__init__``, so tests can swap in an in-memory database or a
``MagicMock``.
"""
