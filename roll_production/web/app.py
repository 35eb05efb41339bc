"""FastAPI-based HTTP interface for the roll production workflow."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional, Type

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..aggregation import GroupBy, PercentageMode
from ..config import WorkflowSettings
from ..domain import Roll, RollStatus, Stage
from ..errors import (
    DataIntegrityError,
    ExceedsJobOrderBalanceError,
    ExceedsUpstreamError,
    InvalidQuantityError,
    InvalidTransitionError,
    PermissionDeniedError,
    StageAlreadyRecordedError,
    WorkflowError,
)
from ..logging_config import get_logger, setup_logging
from ..repository import (
    ConcurrentModificationError,
    DuplicateRecordError,
    RecordNotFoundError,
    RepositoryError,
)
from ..services import Authorizer, WorkflowService
from ..state_machine import TransitionResult, allowed_commands
from ..storage import WorkflowDatabase

logger = get_logger(__name__)

ERROR_STATUS: Dict[Type[Exception], int] = {
    InvalidQuantityError: 422,
    ExceedsUpstreamError: 422,
    StageAlreadyRecordedError: 409,
    ExceedsJobOrderBalanceError: 409,
    InvalidTransitionError: 409,
    PermissionDeniedError: 403,
    DataIntegrityError: 500,
    RecordNotFoundError: 404,
    DuplicateRecordError: 409,
    ConcurrentModificationError: 409,
}


class JobOrderIn(BaseModel):
    target_quantity: float = Field(..., ge=0)
    requires_printing: bool = False
    id: Optional[str] = None
    customer_id: str = ""
    customer_name: str = ""
    order_id: str = ""
    item_id: str = ""


class StartRollIn(BaseModel):
    operator_id: Optional[str] = None
    notes: str = ""


class StageIn(BaseModel):
    quantity: float
    status: Optional[str] = None
    operator_id: Optional[str] = None
    overwrite: bool = False


class ReceiveIn(BaseModel):
    notes: Optional[str] = None
    operator_id: Optional[str] = None


def roll_payload(roll: Roll) -> Dict[str, Any]:
    payload = asdict(roll)
    payload["status"] = roll.status.value
    payload["allowed_commands"] = [command.value for command in allowed_commands(roll)]
    for key, value in payload.items():
        if hasattr(value, "isoformat"):
            payload[key] = value.isoformat()
    return payload


def transition_payload(result: TransitionResult) -> Dict[str, Any]:
    return {
        "roll": roll_payload(result.roll),
        "previous_status": result.previous_status.value,
        "command": result.command.value,
        "stage": result.stage_record.stage.value if result.stage_record else None,
        "quantity": result.stage_record.quantity if result.stage_record else None,
        "stage_waste": result.stage_waste,
        "stage_waste_percentage": result.stage_waste_percentage,
        "cumulative_waste": result.cumulative_waste,
        "warnings": list(result.warnings),
    }


def _error_response(exc: Exception) -> JSONResponse:
    status_code = 400
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS:
            status_code = ERROR_STATUS[error_type]
            break
    details = exc.details if isinstance(exc, WorkflowError) else {}
    message = exc.message if isinstance(exc, WorkflowError) else str(exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": message, "details": details},
    )


def _parse_status(value: Optional[str]) -> Optional[RollStatus]:
    if value is None:
        return None
    try:
        return RollStatus.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def create_app(
    database_path: Optional[str] = None,
    *,
    settings: Optional[WorkflowSettings] = None,
    authorizer: Optional[Authorizer] = None,
) -> FastAPI:
    settings = settings or WorkflowSettings.from_env()
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        enable_file_logging=settings.enable_file_logging,
    )
    database = WorkflowDatabase(database_path or settings.database_path)
    service = WorkflowService(
        job_order_repo=database.job_orders,
        roll_repo=database.rolls,
        authorizer=authorizer,
        percentage_mode=settings.percentage_mode,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
        yield
        database.close()

    app = FastAPI(title="Roll Production Workflow", lifespan=lifespan)
    app.state.workflow_service = service
    app.state.database = database

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return _error_response(exc)

    @app.exception_handler(RepositoryError)
    async def repository_error_handler(request: Request, exc: RepositoryError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc)

    @app.post("/job-orders", status_code=201)
    async def create_job_order(payload: JobOrderIn, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        job_order = service.register_job_order(
            payload.target_quantity,
            requires_printing=payload.requires_printing,
            job_order_id=payload.id,
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            order_id=payload.order_id,
            item_id=payload.item_id,
        )
        return asdict(job_order)

    @app.post("/job-orders/{job_order_id}/rolls", status_code=201)
    async def create_roll(job_order_id: str, payload: StartRollIn, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        roll = service.start_roll(
            job_order_id, operator_id=payload.operator_id, notes=payload.notes
        )
        return roll_payload(roll)

    @app.get("/job-orders/{job_order_id}/balance")
    async def job_order_balance(job_order_id: str, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        return asdict(service.job_order_balance(job_order_id))

    @app.get("/job-orders/{job_order_id}/waste")
    async def job_order_waste(job_order_id: str, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        report = asdict(service.job_order_waste(job_order_id))
        report["stages"] = [
            asdict(summary) for summary in service.stage_waste_summary(job_order_id)
        ]
        return report

    @app.get("/waste/summary")
    async def waste_summary(
        request: Request,
        group_by: str = Query("day", alias="groupBy"),
        start: Optional[date] = Query(None, alias="from"),
        end: Optional[date] = Query(None, alias="to"),
        mode: Optional[str] = Query(None),
    ):
        service: WorkflowService = request.app.state.workflow_service
        try:
            percentage_mode = PercentageMode(mode) if mode else None
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if group_by == "stage":
            summaries = service.stage_waste_summary()
        else:
            try:
                grouping = GroupBy(group_by)
            except ValueError as exc:
                raise HTTPException(status_code=422, detail=str(exc)) from exc
            try:
                summaries = service.waste_summary(
                    grouping, start=start, end=end, mode=percentage_mode
                )
            except ValueError as exc:
                raise HTTPException(status_code=422, detail=str(exc)) from exc
        results: List[Dict[str, Any]] = [asdict(summary) for summary in summaries]
        return {"group_by": group_by, "results": results}

    # Roll ids contain slashes, so the specific POST routes come before the
    # catch-all GET.
    @app.post("/rolls/{roll_id:path}/stage/{stage}")
    async def record_stage(roll_id: str, stage: str, payload: StageIn, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        try:
            parsed_stage = Stage.parse(stage)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        result = service.record_stage(
            roll_id,
            parsed_stage,
            payload.quantity,
            operator_id=payload.operator_id,
            target=_parse_status(payload.status),
            overwrite=payload.overwrite,
        )
        return transition_payload(result)

    @app.post("/rolls/{roll_id:path}/receive")
    async def receive_roll(roll_id: str, payload: ReceiveIn, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        result = service.receive_roll(
            roll_id, payload.notes, operator_id=payload.operator_id
        )
        return transition_payload(result)

    @app.get("/rolls/{roll_id:path}/waste")
    async def roll_waste(roll_id: str, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        return asdict(service.roll_waste(roll_id))

    @app.get("/rolls/{roll_id:path}")
    async def get_roll(roll_id: str, request: Request):
        service: WorkflowService = request.app.state.workflow_service
        return roll_payload(service.get_roll(roll_id))

    return app


__all__ = ["create_app", "roll_payload", "transition_payload"]
