"""
Module: engagement_kernel.db.types
Responsibility: Enum column type shared by the model files.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or outer layers.
"""

from sqlalchemy import Enum as SAEnum


def enum_column(enum_cls: type) -> SAEnum:
    """
    Column type storing a str Enum by value in a VARCHAR.

    Loads come back as enum members, binds accept members or raw values.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
