from contextlib import contextmanager
from typing import Optional


class AppError(Exception):
    """Base error for rejected operations; ``status_code`` is the HTTP status it maps to."""

    status_code = 400

    def __init__(self, message: str, estudiante_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.estudiante_id = estudiante_id


class ValidationError(AppError):
    status_code = 400


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


@contextmanager
def about_student(estudiante_id: Optional[str]):
    """Tag any AppError raised inside the block with the student it concerns."""
    try:
        yield
    except AppError as exc:
        if exc.estudiante_id is None:
            exc.estudiante_id = estudiante_id
        raise
