"""
Property Store — namespaced key/value persistence.

Thin wrapper over ``AppProperty`` rows. SQLAlchemy failures are rolled back
and raised as ``StoreAccessError``.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from orgplan.core.exceptions import StoreAccessError
from orgplan.models import db
from orgplan.models.property import AppProperty

logger = logging.getLogger(__name__)


class PropertyStore:
    """Get/set/delete JSON values by key."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def get(self, key: str):
        try:
            prop = self.session.query(AppProperty).filter_by(key=key).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreAccessError(f"Property read failed: {exc.__class__.__name__}") from exc
        return prop.value if prop is not None else None

    def set(self, key: str, value) -> None:
        try:
            prop = self.session.query(AppProperty).filter_by(key=key).first()
            if prop is None:
                self.session.add(AppProperty(key=key, value=value))
            else:
                prop.value = value
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreAccessError(f"Property write failed: {exc.__class__.__name__}") from exc

    def delete(self, key: str) -> bool:
        try:
            deleted = self.session.query(AppProperty).filter_by(key=key).delete()
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreAccessError(f"Property delete failed: {exc.__class__.__name__}") from exc
        return bool(deleted)

    def keys(self, prefix: str = "") -> list[str]:
        try:
            rows = self.session.query(AppProperty.key).filter(
                AppProperty.key.startswith(prefix),
            ).order_by(AppProperty.key).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreAccessError(f"Property read failed: {exc.__class__.__name__}") from exc
        return [r[0] for r in rows]
