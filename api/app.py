"""FastAPI surface for the clinic booking engine."""

import logging
from contextlib import asynccontextmanager
from datetime import date as date_type
from typing import List

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from models import ScheduleConfig
from scheduler.engine import SlotAllocator
from scheduler.errors import ErrorCode, SchedulingError
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AvailabilitySlot,
    CancelRequest,
    ErrorResponse,
    RescheduleRequest,
    StatusUpdate
)

logger = logging.getLogger(__name__)

# Patient-correctable slot rejections
_UNPROCESSABLE = {
    ErrorCode.NOT_A_WORKING_DAY,
    ErrorCode.OUTSIDE_WORKING_HOURS,
    ErrorCode.MISALIGNED_GRID,
    ErrorCode.MISALIGNED_EXTENDED_SERVICE_START,
    ErrorCode.DATE_BLOCKED,
    ErrorCode.SLOT_BLOCKED,
    ErrorCode.IN_VACATION_PERIOD,
    ErrorCode.SLOT_IN_PAST,
}

_STATUS_BY_CODE = {
    ErrorCode.SLOT_TAKEN: 409,
    ErrorCode.INVALID_SERVICE_TYPE: 400,
    ErrorCode.APPOINTMENT_NOT_FOUND: 404,
    ErrorCode.STORAGE_UNAVAILABLE: 503,
}


def status_for(code: ErrorCode) -> int:
    if code in _UNPROCESSABLE:
        return 422
    return _STATUS_BY_CODE.get(code, 409)


def create_app(allocator: SlotAllocator) -> FastAPI:
    """Build the API around an already wired allocator."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if allocator.dispatcher is not None:
            allocator.dispatcher.shutdown(wait=False)

    app = FastAPI(title="Clinic Appointment Booking", lifespan=lifespan)
    app.state.allocator = allocator

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        status_code = status_for(exc.code)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error_code=exc.code.value, message=exc.message).model_dump()
        )

    # --- Patient Booking ---

    @app.get("/availability", response_model=List[AvailabilitySlot])
    def get_availability(date: date_type = Query(...), service_type: str = Query(...)):
        return [
            AvailabilitySlot(
                time=slot.time.strftime("%H:%M"),
                available=slot.available,
                reason=slot.reason.value if slot.reason else None
            )
            for slot in allocator.availability(date, service_type)
        ]

    @app.post("/appointments", response_model=AppointmentResponse, status_code=201)
    def create_appointment(body: AppointmentCreate):
        appointment = allocator.allocate(body.date, body.time, body.service_type, body.patient())
        return AppointmentResponse.from_appointment(appointment)

    @app.post("/appointments/cancel", response_model=AppointmentResponse)
    def cancel_with_token(body: CancelRequest):
        return AppointmentResponse.from_appointment(allocator.cancel_by_token(body.token))

    @app.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
    def get_appointment(appointment_id: int):
        return AppointmentResponse.from_appointment(allocator.get_appointment(appointment_id))

    @app.patch("/appointments/{appointment_id}", response_model=AppointmentResponse)
    def reschedule_appointment(appointment_id: int, body: RescheduleRequest):
        return AppointmentResponse.from_appointment(allocator.reschedule(appointment_id, body.date, body.time))

    # --- Staff ---

    @app.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
    def update_status(appointment_id: int, body: StatusUpdate):
        return AppointmentResponse.from_appointment(allocator.update_status(appointment_id, body.status))

    @app.get("/admin/schedule-config", response_model=ScheduleConfig)
    def get_schedule_config():
        return allocator.get_config()

    @app.put("/admin/schedule-config", response_model=ScheduleConfig)
    def put_schedule_config(config: ScheduleConfig):
        return allocator.update_config(config)

    @app.get("/admin/statistics")
    def get_statistics(year: int = Query(..., ge=2000), month: int = Query(..., ge=1, le=12)):
        return allocator.statistics(year, month)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
