"""Live build log streaming endpoint."""

# ruff: noqa: B008

from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from stellar_server.api.context import AppContext, get_websocket_context
from stellar_server.api.schemas import status_to_response
from stellar_server.api.streams import LogBroker
from stellar_server.runner import JobNotFoundError, JobStatus, JobSupervisor, LogEvent

router = APIRouter(prefix="/builds", tags=["logs"])

# Upper bound between status checks while no output arrives.
_STATUS_INTERVAL = 0.25


def _line_frame(index: int, line: str) -> dict[str, object]:
    return {"type": "log", "index": index, "line": line}


def _status_frame(job_status: JobStatus) -> dict[str, object]:
    payload = status_to_response(job_status).model_dump(mode="json")
    return {"type": "status", **payload}


@router.websocket("/{build_id}/logs/stream")
async def stream_build_logs(websocket: WebSocket, build_id: str) -> None:
    context: AppContext = get_websocket_context(websocket)
    supervisor = context.supervisor
    if build_id not in supervisor.table:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    queue, unsubscribe = _get_log_broker(context).subscribe(build_id)
    try:
        await _pump_frames(websocket, supervisor, build_id, queue)
    except (WebSocketDisconnect, JobNotFoundError):
        pass
    finally:
        unsubscribe()


async def _pump_frames(
    websocket: WebSocket,
    supervisor: JobSupervisor,
    build_id: str,
    queue: asyncio.Queue[LogEvent | None],
) -> None:
    # Live events only wake the loop; lines are always read from the buffer so
    # the client sees them in buffer order exactly once.
    cursor = 0
    loop = asyncio.get_running_loop()
    next_status_check = loop.time()
    while True:
        cursor = await _send_lines(websocket, supervisor, build_id, cursor)
        if loop.time() >= next_status_check:
            job_status = await asyncio.to_thread(supervisor.poll_status, build_id)
            if job_status.is_terminal:
                await _send_lines(websocket, supervisor, build_id, cursor)
                await websocket.send_json(_status_frame(job_status))
                await websocket.close()
                return
            next_status_check = loop.time() + _STATUS_INTERVAL
        try:
            event = await asyncio.wait_for(queue.get(), timeout=_STATUS_INTERVAL)
        except TimeoutError:
            continue
        pending = [event]
        while not queue.empty():
            pending.append(queue.get_nowait())
        if any(item is None for item in pending):
            await websocket.close(code=status.WS_1001_GOING_AWAY)
            return


async def _send_lines(
    websocket: WebSocket,
    supervisor: JobSupervisor,
    build_id: str,
    cursor: int,
) -> int:
    log_slice = supervisor.fetch_logs_since(build_id, cursor)
    for offset, line in enumerate(log_slice.lines):
        await websocket.send_json(_line_frame(cursor + offset, line))
    return log_slice.next_cursor


def _get_log_broker(context: AppContext) -> LogBroker:
    if context.log_broker is None:
        context.log_broker = LogBroker()
        context.log_broker.attach(context.supervisor)
    return context.log_broker


__all__ = ["router"]
