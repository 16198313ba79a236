"""Snap REST API: the authenticated createSnap entry point."""

import asyncio
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field, field_validator

from models import MediaEditRequest
from services.auth import bearer_token, verify_caller_token
from services.config import Settings, get_settings
from services.errors import (
    INTERNAL,
    INVALID_ARGUMENT,
    UNAUTHENTICATED,
    PipelineError,
    Unauthenticated,
    caller_message,
)
from services.gcs import GcsBlobStore
from services.pipeline import SnapPipeline
from services.reconcile import sweep_orphaned_media
from services.records import FirestoreRecordStore

router = APIRouter(tags=["snaps"])
logger = logging.getLogger(__name__)

HTTP_STATUS_BY_CODE = {
    UNAUTHENTICATED: 401,
    INVALID_ARGUMENT: 400,
    INTERNAL: 500,
}


class MediaEditOptions(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    start_ms: int = Field(ge=0)
    length_sec: float

    @field_validator("filename")
    @classmethod
    def _plain_filename(cls, value: str) -> str:
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError("filename must be a plain file name")
        return value


class CreateSnapRequest(BaseModel):
    diary_id: str = Field(min_length=1, max_length=128, pattern=r"^[^/]+$")
    upload_token: str = Field(pattern=r"^[A-Za-z0-9_-]{1,128}$")
    date: str = Field(pattern=r"^\d{1,4}-\d{1,2}-\d{1,2}$")
    media_edit_options: MediaEditOptions


class CreateSnapResponse(BaseModel):
    date: str
    media_length_sec: float
    video_url: str
    thumbnail_url: str
    is_thumbnail_dark: bool


class ReconcileResponse(BaseModel):
    deleted: list[str]


@lru_cache
def get_app_settings() -> Settings:
    return get_settings()


@lru_cache
def get_blob_store() -> GcsBlobStore:
    return GcsBlobStore(get_app_settings().bucket_name)


@lru_cache
def get_record_store() -> FirestoreRecordStore:
    return FirestoreRecordStore()


@lru_cache
def get_pipeline() -> SnapPipeline:
    return SnapPipeline(get_blob_store(), get_record_store(), get_app_settings())


def _http_error(error: PipelineError) -> HTTPException:
    return HTTPException(
        status_code=HTTP_STATUS_BY_CODE[error.caller_code],
        detail=caller_message(error),
    )


def get_caller_uid(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> str:
    try:
        return verify_caller_token(bearer_token(authorization), settings.auth_jwt_secret)
    except Unauthenticated as exc:
        logger.info("[snaps] Rejected unauthenticated call: %s", exc)
        raise _http_error(exc) from exc


@router.post("/snaps", response_model=CreateSnapResponse, status_code=201)
async def create_snap(
    body: CreateSnapRequest,
    uid: str = Depends(get_caller_uid),
    pipeline: SnapPipeline = Depends(get_pipeline),
) -> CreateSnapResponse:
    """Trim/re-encode an uploaded clip, publish it with its thumbnail and record the snap."""
    options = body.media_edit_options
    request = MediaEditRequest(
        source_filename=options.filename,
        trim_start_ms=options.start_ms,
        trim_length_sec=options.length_sec,
    )
    try:
        snap = await pipeline.create_snap(uid, body.diary_id, body.upload_token, body.date, request)
    except PipelineError as exc:
        # Details were logged by the pipeline; callers only see the coarse code.
        raise _http_error(exc) from exc
    return CreateSnapResponse(
        date=snap.date,
        media_length_sec=snap.media_length_sec,
        video_url=snap.video_url,
        thumbnail_url=snap.thumbnail_url,
        is_thumbnail_dark=snap.is_thumbnail_dark,
    )


@router.post("/diaries/{diary_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_diary_media(
    diary_id: str,
    uid: str = Depends(get_caller_uid),
    blobs: GcsBlobStore = Depends(get_blob_store),
    records: FirestoreRecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_app_settings),
) -> ReconcileResponse:
    """Remove media under the caller's diary that no snap record references."""
    logger.info("[snaps] Reconcile requested by %s for diary %s", uid, diary_id)
    try:
        deleted = await asyncio.to_thread(
            sweep_orphaned_media,
            blobs,
            records,
            uid,
            diary_id,
            media_root=settings.media_root,
            grace_seconds=settings.orphan_grace_seconds,
        )
    except PipelineError as exc:
        logger.info("[snaps] Reconcile rejected for %s: %s", uid, exc)
        raise _http_error(exc) from exc
    return ReconcileResponse(deleted=deleted)
