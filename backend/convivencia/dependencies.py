"""
Convivencia Escolar - FastAPI dependencies

Builds the CaseService for each request and maps engine errors to HTTP.

CONVIVENCIA_BACKEND selects the store:
- "sql" (default): SqlCaseRepository on the request's database session
- "local": process-wide LocalCaseCache mirrored to CONVIVENCIA_CACHE_PATH
"""
import os
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db
from .services.case_service import CaseService
from .services.errors import (
    CaseEngineError, CaseNotFound, DuplicateCase, InvalidTransition,
    MilestoneNotFound, PersistenceError, RequirementsNotMet, StaleCaseError,
)
from .services.repository import CaseRepository, LocalCaseCache, SqlCaseRepository
from .services.repository.local_cache import DEFAULT_CACHE_PATH

CASE_BACKEND = os.getenv("CONVIVENCIA_BACKEND", "sql")


@lru_cache(maxsize=1)
def get_local_cache() -> LocalCaseCache:
    """Single local cache per process, loaded on first use."""
    return LocalCaseCache(path=DEFAULT_CACHE_PATH).load()


def get_case_repository(db: Session = Depends(get_db)) -> CaseRepository:
    if CASE_BACKEND == "local":
        return get_local_cache()
    return SqlCaseRepository(db)


def get_case_service(repository: CaseRepository = Depends(get_case_repository)) -> CaseService:
    return CaseService(repository)


def http_error(error: CaseEngineError) -> HTTPException:
    """Translate a case engine error into the HTTP error the client sees."""
    if isinstance(error, (CaseNotFound, MilestoneNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, RequirementsNotMet):
        return HTTPException(
            status_code=422,
            detail={"message": str(error), "missing_requirements": error.missing},
        )
    if isinstance(error, (InvalidTransition, DuplicateCase, StaleCaseError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, PersistenceError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{error}. The operation can be retried.",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
