"""Error taxonomy for scorecard import and persistence.

Pure calculations never raise; these errors come from the import boundary
(row shape, identity lookup, regime checks) and from the record store.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException


@dataclass(frozen=True)
class ScorecardError(Exception):
    code: str
    detail: str
    status_code: int = 400
    retryable: bool = False

    def __str__(self) -> str:
        return self.detail

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.detail)


class ScorecardValidationError(ScorecardError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=400, retryable=False)


class AgentNotFoundError(ScorecardError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=404, retryable=False)


class ScaleMismatchError(ScorecardError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=409, retryable=False)


class ScorecardStoreError(ScorecardError):
    def __init__(self, code: str, detail: str, status_code: int = 503):
        super().__init__(code=code, detail=detail, status_code=status_code, retryable=True)


def as_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, ScorecardError):
        return exc.to_http_exception()
    if isinstance(exc, HTTPException):
        return exc
    return HTTPException(status_code=500, detail=str(exc) or "Scorecard error")
