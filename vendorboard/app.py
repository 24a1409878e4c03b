from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Generator

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vendorboard import services
from vendorboard.db import get_session, init_db
from vendorboard.importer import import_workbook
from vendorboard.schemas import (
    FeedbackCreate,
    FeedbackListOut,
    FeedbackSaved,
    ImportResult,
    ReportOut,
    VendorData,
    VendorListOut,
    WeeksOut,
)
from vendorboard.weeks import current_monday, format_date, parse_week_start, week_label, weeks_overlapping_month

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Vendorboard",
    version="0.1.0",
    description=(
        "Weekly vendor delivery status API: RAG status, delivery timelines, "
        "achievements and focus items, RAID logs, resources and per-user feedback. "
        "All endpoints return JSON. No authentication; user ids are opaque client tokens."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Report", "description": "The weekly report across all vendors."},
        {"name": "Vendors", "description": "Vendor summaries and single-vendor detail."},
        {"name": "Weeks", "description": "Week navigation helpers."},
        {"name": "Feedback", "description": "Per-user feedback threads keyed by vendor and week."},
        {"name": "Import", "description": "Load vendor data from XLSX workbooks."},
        {"name": "Admin", "description": "Operational endpoints."},
    ],
)

STATIC_DIR = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def _storage_errors(action: str):
    """Map data-layer failures to a generic 500 without leaking details."""
    try:
        yield
    except SQLAlchemyError as exc:
        log.exception("Failed to %s", action)
        raise HTTPException(500, f"Failed to {action}") from exc


def _week_or_400(value: str | None):
    try:
        return parse_week_start(value)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# ---------------------------------------------------------------------------
# Routes: Static
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
async def root():
    html_path = STATIC_DIR / "index.html"
    if not html_path.exists():
        return HTMLResponse("<h1>Vendorboard</h1><p>index.html not found</p>", status_code=500)
    return HTMLResponse(html_path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Routes: Report & Vendors
# ---------------------------------------------------------------------------


@router.get("/report", response_model=ReportOut,
            tags=["Report"], summary="Weekly report for every active, report-included vendor")
async def get_report(
    week_start: str | None = Query(None, description="Monday of the week, YYYY-MM-DD. Defaults to the current week."),
    session: Session = Depends(db_session),
):
    week = _week_or_400(week_start)
    with _storage_errors("fetch report"):
        return services.build_report(session, week)


@router.get("/vendors", response_model=VendorListOut,
            tags=["Vendors"], summary="Vendor summaries with this week's RAG status")
async def list_vendors(session: Session = Depends(db_session)):
    with _storage_errors("fetch vendors"):
        return {"vendors": services.vendor_summaries(session, current_monday())}


@router.get("/vendors/{vendor_id}", response_model=VendorData,
            tags=["Vendors"], summary="Full dashboard data for one vendor")
async def get_vendor(
    vendor_id: str,
    week_start: str | None = Query(None, description="Monday of the week, YYYY-MM-DD"),
    session: Session = Depends(db_session),
):
    week = _week_or_400(week_start)
    with _storage_errors("fetch vendor"):
        data = services.get_vendor_data(session, vendor_id, week)
    if data is None:
        raise HTTPException(404, "Vendor not found")
    return data


# ---------------------------------------------------------------------------
# Routes: Weeks
# ---------------------------------------------------------------------------


@router.get("/weeks", response_model=WeeksOut,
            tags=["Weeks"], summary="Weeks (as Mondays) that overlap a calendar month")
async def list_weeks(
    year: str | None = Query(None),
    month: str | None = Query(None, description="1-12"),
):
    if not year or not month:
        raise HTTPException(400, "year and month parameters are required")
    try:
        year_num, month_num = int(year), int(month)
    except ValueError as exc:
        raise HTTPException(400, "Invalid year or month") from exc
    if not 1 <= month_num <= 12 or not 1 <= year_num < 9999:
        raise HTTPException(400, "Invalid year or month")
    weeks = weeks_overlapping_month(year_num, month_num)
    return {
        "year": year_num,
        "month": month_num,
        "weeks": [{"weekStart": format_date(m), "label": week_label(m)} for m in weeks],
    }


# ---------------------------------------------------------------------------
# Routes: Feedback
# ---------------------------------------------------------------------------


@router.get("/feedback", response_model=FeedbackListOut,
            tags=["Feedback"], summary="All feedback for a vendor and week, newest first")
async def get_feedback(
    vendor_id: str | None = Query(None),
    week_start: str | None = Query(None, description="YYYY-MM-DD"),
    session: Session = Depends(db_session),
):
    if not vendor_id or not week_start:
        raise HTTPException(400, "vendor_id and week_start are required")
    week = _week_or_400(week_start)
    with _storage_errors("fetch feedback"):
        rows = services.list_feedback(session, vendor_id, week)
        return {"feedback": [services.feedback_out(r) for r in rows]}


@router.post("/feedback", response_model=FeedbackSaved,
             tags=["Feedback"], summary="Create or update the caller's feedback (201 created, 200 updated)")
async def save_feedback(body: FeedbackCreate, response: Response, session: Session = Depends(db_session)):
    if services.missing_feedback_fields(body.model_dump()):
        raise HTTPException(400, "vendor_id, week_start, user_id, user_name, and feedback_html are required")
    week = _week_or_400(body.week_start)
    with _storage_errors("save feedback"):
        row, created = services.upsert_feedback(
            session, vendor_id=body.vendor_id, week_start=week, user_id=body.user_id,
            user_name=body.user_name, feedback_html=body.feedback_html,
        )
        session.commit()
    response.status_code = 201 if created else 200
    return {"feedback": services.feedback_out(row)}


# ---------------------------------------------------------------------------
# Routes: Import & Admin
# ---------------------------------------------------------------------------


@router.post("/import", response_model=ImportResult,
             tags=["Import"], summary="Import vendor data from an XLSX workbook")
async def import_file(file: UploadFile = File(...), session: Session = Depends(db_session)):
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        with _storage_errors("import workbook"):
            return import_workbook(tmp_path, session)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)


@router.get("/health", tags=["Admin"], summary="Database connectivity check")
async def health(session: Session = Depends(db_session)):
    with _storage_errors("reach database"):
        session.execute(text("SELECT 1"))
    return {"ok": True}


app.include_router(router, prefix="/api")
# Unprefixed aliases for callers that address the API root directly
app.include_router(router, include_in_schema=False)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn

    from vendorboard.config import get_settings

    settings = get_settings()
    uvicorn.run("vendorboard.app:app", host=settings.host, port=settings.port, reload=True)


if __name__ == "__main__":
    main()
