"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from postflow.db.models.credential import CredentialRow
from postflow.db.models.job import JobRow

__all__ = [
    "CredentialRow",
    "JobRow",
]
