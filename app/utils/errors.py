# =============================================
# File: app/utils/errors.py
# Purpose: Error taxonomy for the HTTP boundary, rendered as RFC 7807 problem documents
# =============================================
from __future__ import annotations
from typing import Any, Dict

_PROBLEM_BASE = "https://api.recomengine.com/errors/"


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


def problem(err: AppError) -> Dict[str, Any]:
    return {
        "type": _PROBLEM_BASE + err.code.lower().replace("_", "-"),
        "title": type(err).__name__.replace("Error", ""),
        "status": err.status_code,
        "detail": err.message,
    }
