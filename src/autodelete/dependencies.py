"""FastAPI dependencies wiring the retention engine per request.

This module provides:
- get_record_store: Host datastore adapter (reference SQL store)
- get_retention_settings: Retention rules from RETENTION_SETTINGS_FILE
- get_file_deleter: Sandboxed deleter rooted at UPLOAD_ROOT
- get_retention_service: RetentionService assembled from the above

Hosts with their own datastore override get_record_store through
``app.dependency_overrides``.
"""

import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .retention.exceptions import RetentionError
from .retention.file_deleter import FileDeleter
from .retention.ports import RecordStorePort
from .retention.schemas import RetentionSettings
from .retention.service import RetentionService, load_retention_settings
from .retention.sql_store import SqlRecordStore

logger = logging.getLogger(__name__)


def get_record_store(db: Session = Depends(get_db)) -> RecordStorePort:
    """Record store bound to the request's database session."""
    return SqlRecordStore(db)


def get_retention_settings() -> RetentionSettings:
    """Load the retention rules for this request.

    Raises:
        HTTPException 500: The settings document is invalid
    """
    try:
        return load_retention_settings()
    except RetentionError as e:
        logger.error("Retention settings could not be loaded", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Retention settings are invalid",
        )


def get_file_deleter() -> FileDeleter:
    settings = get_settings()
    return FileDeleter(settings.UPLOAD_ROOT, settings.UPLOAD_BASE_URL)


def get_retention_service(
    db: Session = Depends(get_db),
    store: RecordStorePort = Depends(get_record_store),
    settings: RetentionSettings = Depends(get_retention_settings),
    file_deleter: FileDeleter = Depends(get_file_deleter),
) -> RetentionService:
    """Retention service for one request.

    Example:
        @router.post("/run")
        def run(service: RetentionService = Depends(get_retention_service)):
            return service.run_manual()
    """
    return RetentionService(db=db, store=store, settings=settings, file_deleter=file_deleter)
