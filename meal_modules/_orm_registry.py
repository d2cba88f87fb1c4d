"""
Module ORM Registry (``meal_modules._orm_registry``).

Responsibility
--------------
Ensure kernel models and every module ORM model are imported so that
``Base.metadata`` holds all table definitions before
``meal_kernel.db.engine.create_tables()`` runs.
"""


def import_all_orm_models() -> None:
    """Import kernel models and module ORM modules (idempotent)."""
    import meal_kernel.models  # noqa: F401
    import meal_modules.compensation.orm  # noqa: F401
