"""RFC 7807 Problem Details for the CertKeeper API.

Provides :class:`CertkeeperProblem`, an exception that renders itself
as an ``application/problem+json`` response, the error-type URNs used
by the API, and a Flask error-handler registration function that also
translates domain exceptions (parse errors, folder-structure errors).

Usage::

    raise CertkeeperProblem(NOT_FOUND, "Certificate not found", 404)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from certkeeper.access.tree import (
    CycleError,
    DuplicateFolder,
    FolderError,
    FolderNotFound,
    SystemFolderProtected,
)
from certkeeper.certs.errors import CertificateParseError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Error-type URNs
# ---------------------------------------------------------------------------
_P = "urn:certkeeper:error:"

BAD_REQUEST = _P + "badRequest"
CONFLICT = _P + "conflict"
FOLDER_CYCLE = _P + "folderCycle"
FORBIDDEN = _P + "forbidden"
NOT_FOUND = _P + "notFound"
PAYLOAD_TOO_LARGE = _P + "payloadTooLarge"
RATE_LIMITED = _P + "rateLimited"
SERVER_INTERNAL = _P + "serverInternal"
SYSTEM_FOLDER_PROTECTED = _P + "systemFolderProtected"
UNAUTHORIZED = _P + "unauthorized"
UNSUPPORTED_FILE_TYPE = _P + "unsupportedFileType"

# Content type for RFC 7807 responses
PROBLEM_CONTENT_TYPE = "application/problem+json"


def parse_error_type(reason: str) -> str:
    """URN for a :class:`CertificateParseError` reason code."""
    return _P + reason


# ---------------------------------------------------------------------------
# Problem exception
# ---------------------------------------------------------------------------


class CertkeeperProblem(Exception):
    """An RFC 7807 *problem details* object that doubles as an exception.

    Raise anywhere in request handling to produce a standards-compliant
    error response.  The registered Flask error handler catches it and
    calls :meth:`to_response`.

    Parameters
    ----------
    error_type:
        A URN string (one of the constants above) or ``"about:blank"``
        for generic HTTP errors.
    detail:
        Human-readable explanation of the problem.
    status:
        HTTP status code (default 400).
    title:
        Short summary; omitted when *error_type* is self-explanatory.
    extra:
        Additional members merged into the JSON body.
    headers:
        Extra HTTP headers to include on the response
        (e.g. ``Retry-After``).

    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        title: str | None = None,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.error_type = error_type
        self.detail = detail
        self.status = status
        self.title = title
        self.extra = extra or {}
        self.extra_headers = headers or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the RFC 7807 JSON structure."""
        body: dict[str, Any] = {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
        }
        if self.title is not None:
            body["title"] = self.title
        for key, value in self.extra.items():
            body.setdefault(key, value)
        return body

    def to_response(self):
        """Build a Flask :class:`~flask.Response`."""
        resp = jsonify(self.to_dict())
        resp.status_code = self.status
        resp.headers["Content-Type"] = PROBLEM_CONTENT_TYPE
        resp.headers["Cache-Control"] = "no-store"
        for key, value in self.extra_headers.items():
            resp.headers[key] = value
        return resp


# ---------------------------------------------------------------------------
# Domain exception translation
# ---------------------------------------------------------------------------


def problem_from_parse_error(exc: CertificateParseError) -> CertkeeperProblem:
    extra = {"reason": exc.reason}
    if exc.filename:
        extra["filename"] = exc.filename
    return CertkeeperProblem(
        parse_error_type(exc.reason),
        exc.detail,
        400,
        title="Certificate rejected",
        extra=extra,
    )


def problem_from_folder_error(exc: FolderError) -> CertkeeperProblem:
    if isinstance(exc, FolderNotFound):
        error_type, status = NOT_FOUND, 404
    elif isinstance(exc, CycleError):
        error_type, status = FOLDER_CYCLE, 409
    elif isinstance(exc, SystemFolderProtected):
        error_type, status = SYSTEM_FOLDER_PROTECTED, 400
    elif isinstance(exc, DuplicateFolder):
        error_type, status = CONFLICT, 409
    else:
        error_type, status = BAD_REQUEST, 400
    extra = {"folderId": exc.folder_id} if exc.folder_id is not None else None
    return CertkeeperProblem(error_type, exc.detail, status, extra=extra)


# ---------------------------------------------------------------------------
# Flask error handler registration
# ---------------------------------------------------------------------------


def register_error_handlers(app: Flask) -> None:
    """Attach handlers that produce RFC 7807 responses for all errors."""

    @app.errorhandler(CertkeeperProblem)
    def _handle_problem(exc: CertkeeperProblem):
        return exc.to_response()

    @app.errorhandler(CertificateParseError)
    def _handle_parse_error(exc: CertificateParseError):
        return problem_from_parse_error(exc).to_response()

    @app.errorhandler(FolderError)
    def _handle_folder_error(exc: FolderError):
        return problem_from_folder_error(exc).to_response()

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_too_large(exc: RequestEntityTooLarge):
        problem = CertkeeperProblem(
            PAYLOAD_TOO_LARGE,
            "Request body exceeds the configured upload limit",
            413,
        )
        return problem.to_response()

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        problem = CertkeeperProblem(
            "about:blank",
            exc.description or "An error occurred",
            exc.code or 500,
            title=exc.name,
        )
        return problem.to_response()

    @app.errorhandler(Exception)
    def _handle_unhandled(exc: Exception):
        # HTTPException subclasses are already caught above; this
        # handler covers everything else (genuine 500s).
        log.exception("Unhandled exception during request")
        problem = CertkeeperProblem(
            SERVER_INTERNAL,
            "An unexpected internal error occurred",
            500,
        )
        return problem.to_response()
