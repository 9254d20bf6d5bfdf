import logging
from typing import Optional

from sqlalchemy.orm import Session

from leave_management.core.permissions import Principal


class BaseService:
    """
    Common plumbing for services: the request's session, the acting principal
    (None for system jobs) and a logger named after the concrete service module.
    """

    def __init__(self, db: Session, principal: Optional[Principal] = None):
        self.db = db
        self.principal = principal
        self._logger = logging.getLogger(self.__class__.__module__)

    @property
    def actor_id(self) -> Optional[int]:
        return self.principal.employee_id if self.principal else None

    @property
    def actor_role(self) -> Optional[str]:
        return self.principal.role.value if self.principal else None

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=self._context(extra))

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=self._context(extra))

    def log_error(self, message: str, exc_info: bool = False, **extra):
        self._logger.error(message, exc_info=exc_info, extra=self._context(extra))

    def _context(self, extra: dict) -> dict:
        if self.principal is not None:
            extra.setdefault("actor_id", self.principal.employee_id)
        return extra
