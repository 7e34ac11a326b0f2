"""Error taxonomy for the lesson service.

Every domain failure is a ``CoachError`` subclass carrying the HTTP status it
maps to, a short machine-readable ``code`` and a human message. Routers raise
these freely; ``register_error_handlers`` turns them into JSON bodies of the
form ``{"error": code, "message": message, **extra}``.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CoachError(Exception):
	status_code = 500
	code = "internal_error"

	def __init__(self, message: str, *, code: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
		super().__init__(message)
		self.message = message
		if code is not None:
			self.code = code
		self.extra: Dict[str, Any] = dict(extra or {})

	def to_payload(self) -> Dict[str, Any]:
		return {"error": self.code, "message": self.message, **self.extra}


class ValidationError(CoachError):
	status_code = 400
	code = "validation_error"


class NotFoundError(CoachError):
	status_code = 404
	code = "not_found"


class OwnershipError(NotFoundError):
	"""Caller does not own the resource.

	Rendered exactly like a NotFoundError so an unauthorized caller cannot
	learn whether the resource exists.
	"""


class QualityGateError(CoachError):
	status_code = 422

	def __init__(self, code: str, message: str, *, word_count: Optional[int] = None, min_words: Optional[int] = None) -> None:
		extra: Dict[str, Any] = {}
		if word_count is not None:
			extra["wordCount"] = word_count
		if min_words is not None:
			extra["minWords"] = min_words
		super().__init__(message, code=code, extra=extra)
		self.word_count = word_count
		self.min_words = min_words


class RevisionLimitError(CoachError):
	status_code = 400
	code = "revision_limit"


class ConflictError(CoachError):
	status_code = 409
	code = "conflict"


class UpstreamModelError(CoachError):
	status_code = 500
	code = "upstream_model_error"

	def __init__(self, message: str, *, retryable: bool = False) -> None:
		super().__init__(message, extra={"retryable": retryable})
		self.retryable = retryable


async def _coach_error_handler(request: Request, exc: CoachError) -> JSONResponse:
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
	# Missing or malformed body fields are a plain validation error (400), never 422
	fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
	first = exc.errors()[0] if exc.errors() else {}
	message = f"{fields[0]}: {first.get('msg', 'invalid')}" if fields and fields[0] else "Invalid request"
	return JSONResponse(status_code=400, content=ValidationError(message, extra={"fields": fields}).to_payload())


def register_error_handlers(app: FastAPI) -> None:
	app.add_exception_handler(CoachError, _coach_error_handler)
	app.add_exception_handler(RequestValidationError, _request_validation_handler)
