# ruff: noqa: B008
"""Build lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from stellar_server.api.context import AppContext, get_app_context
from stellar_server.api.schemas import (
    APIMessage,
    BuildLogsResponse,
    BuildStartRequest,
    BuildStartResponse,
    BuildStatusResponse,
    logs_to_response,
    status_to_response,
)
from stellar_server.runner import (
    JobNotFoundError,
    JobStillRunning,
    SpawnFailedError,
    SupervisorBusyError,
)

router = APIRouter(prefix="/builds", tags=["builds"])


@router.post("", response_model=BuildStartResponse, status_code=status.HTTP_201_CREATED)
def start_build(
    payload: BuildStartRequest,
    context: AppContext = Depends(get_app_context),
) -> BuildStartResponse:
    try:
        build_id = context.supervisor.start(
            payload.executable,
            payload.args,
            cwd=payload.cwd,
            env=payload.env,
        )
    except SupervisorBusyError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SpawnFailedError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BuildStartResponse(build_id=build_id)


@router.get("", response_model=list[str])
def list_builds(context: AppContext = Depends(get_app_context)) -> list[str]:
    return context.supervisor.job_ids()


@router.get("/{build_id}", response_model=BuildStatusResponse)
def get_build_status(
    build_id: str,
    context: AppContext = Depends(get_app_context),
) -> BuildStatusResponse:
    try:
        job_status = context.supervisor.poll_status(build_id)
    except JobNotFoundError as exc:
        raise _not_found() from exc
    return status_to_response(job_status)


@router.get("/{build_id}/logs", response_model=BuildLogsResponse)
def get_build_logs(
    build_id: str,
    cursor: int = 0,
    context: AppContext = Depends(get_app_context),
) -> BuildLogsResponse:
    try:
        log_slice = context.supervisor.fetch_logs_since(build_id, max(cursor, 0))
    except JobNotFoundError as exc:
        raise _not_found() from exc
    return logs_to_response(log_slice)


@router.post("/{build_id}/cancel", response_model=APIMessage)
def cancel_build(
    build_id: str,
    context: AppContext = Depends(get_app_context),
) -> APIMessage:
    try:
        cancelled = context.supervisor.cancel(build_id)
    except JobNotFoundError as exc:
        raise _not_found() from exc
    if not cancelled:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Build not running.")
    return APIMessage(message="build cancelled")


@router.delete("/{build_id}", response_model=APIMessage)
def forget_build(
    build_id: str,
    context: AppContext = Depends(get_app_context),
) -> APIMessage:
    try:
        context.supervisor.forget(build_id)
    except JobNotFoundError as exc:
        raise _not_found() from exc
    except JobStillRunning as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return APIMessage(message="build forgotten")


def _not_found() -> HTTPException:
    return HTTPException(status.HTTP_404_NOT_FOUND, detail="Build not found.")


__all__ = ["router"]
