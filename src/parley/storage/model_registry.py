"""Model registry to ensure all ORM models are imported before table creation.

Metadata operations (``create_all``/``drop_all``) only see tables whose model
modules have been imported, so they call ``register_all_models`` first.
"""

_models_registered = False


def register_all_models() -> None:
    """Import all ORM model modules to register them with Base.metadata.

    Idempotent: calling it more than once has no further effect.
    """
    global _models_registered

    if _models_registered:
        return

    # Conversation event log table
    from parley.conversation import orm as _  # noqa: F401

    _models_registered = True
