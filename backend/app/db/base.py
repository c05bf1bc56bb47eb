"""Database base classes and models."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Import models so Alembic can autogenerate migrations
import app.db.models.account  # noqa: F401,E402
import app.db.models.store  # noqa: F401,E402
import app.db.models.subscription  # noqa: F401,E402
import app.db.models.payment_history  # noqa: F401,E402
import app.db.models.notification  # noqa: F401,E402
