"""Process-wide SessionApplicationService, wired at application start-up."""

from src.sc_common.errors import InternalError
from src.sc_session.application.service import SessionApplicationService

_service: SessionApplicationService | None = None


def set_session_service(service: SessionApplicationService | None) -> None:
    global _service  # noqa: PLW0603
    _service = service


def get_session_service() -> SessionApplicationService:
    if _service is None:
        raise InternalError("Session service is not initialised")
    return _service
