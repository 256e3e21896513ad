"""FastAPI application for EventDesk."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from hashlib import blake2s
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urlparse
import tomllib

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PayloadError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import mailer, policy
from .auth import current_user, require_user, sign_in, sign_out, verify_password
from .config import settings
from .crud import (
    build_event,
    create_event,
    create_user,
    events_for_organizer,
    get_event,
    get_user,
    get_user_by_email,
    has_past_events,
    listed_events,
    paginate_approved_events,
    past_events,
    pending_events,
    save_event,
    update_event,
)
from .database import SessionLocal
from .models import Event, User
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .utils import deadline_text, format_date_range, render_markdown, today
from .utils.ics import generate_ics
from .web import register_web_routes

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

BOOLEAN_FORM_FIELDS = policy.BOOLEAN_FIELDS


def _no_cache(response: Response) -> Response:
    """Prevent clients from caching dynamic pages so fresh data is shown."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("eventdesk")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="EventDesk", version=APP_VERSION, lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="eventdesk_session",
    same_site="lax",
)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

register_web_routes(app, templates)


def _asset_version(filename: str) -> str:
    file_path = static_dir / filename
    if not file_path.is_file():
        return APP_VERSION
    hasher = blake2s()
    hasher.update(file_path.read_bytes())
    return hasher.hexdigest()[:12]


ASSET_VERSIONS = {"app.css": _asset_version("app.css")}


def asset_version(filename: str) -> str:
    return ASSET_VERSIONS.get(filename, APP_VERSION)


templates.env.globals["app_version"] = APP_VERSION
templates.env.globals["asset_version"] = asset_version
templates.env.globals["application_processes"] = [
    (process.value, label) for process, label in policy.APPLICATION_PROCESS_LABELS.items()
]
templates.env.globals["application_process_label"] = lambda value: dict(
    templates.env.globals["application_processes"]
).get(value, value)
templates.env.filters["markdown"] = render_markdown
templates.env.filters["date_range"] = format_date_range
templates.env.filters["deadline"] = deadline_text


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class EventPayload(BaseModel):
    """JSON body accepted by ``PUT /events/{id}``; every field is optional."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    description: str | None = None
    website: str | None = None
    code_of_conduct: str | None = None
    city: str | None = None
    country: str | None = None
    organizer_name: str | None = None
    organizer_email: str | None = None
    number_of_tickets: int | None = Field(None, ge=1)
    ticket_funded: bool | None = None
    accommodation_funded: bool | None = None
    travel_funded: bool | None = None
    start_date: date | None = None
    end_date: date | None = None
    deadline: date | None = None
    application_process: str | None = None
    application_link: str | None = None
    data_protection_confirmation: bool | None = None
    approved: bool | None = None


async def submitted_fields(request: Request) -> dict[str, Any]:
    """Return the submitted event fields from a form post or a JSON body."""
    content_type = (request.headers.get("content-type") or "").lower()
    if content_type.startswith("application/json"):
        try:
            raw = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Malformed JSON body") from exc
        try:
            payload = EventPayload.model_validate(raw)
        except PayloadError as exc:
            raise RequestValidationError(exc.errors()) from exc
        return payload.model_dump(exclude_unset=True)
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _with_message(url: str, message: str, message_class: str = "alert-success") -> str:
    params = urlencode({"message": message, "message_class": message_class})
    return f"{url}?{params}"


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _safe_next(raw: str | None) -> str:
    """Only follow local redirect targets after sign-in."""
    if not raw:
        return "/events"
    parsed = urlparse(raw)
    if parsed.scheme or parsed.netloc or not raw.startswith("/"):
        return "/events"
    return raw


def _page(
    request: Request,
    template_name: str,
    *,
    user: User | None,
    status_code: int = 200,
    **context: Any,
):
    payload = {
        "request": request,
        "current_user": user,
        "message": request.query_params.get("message"),
        "message_class": request.query_params.get("message_class"),
    }
    payload.update(context)
    response = templates.TemplateResponse(
        request, template_name, payload, status_code=status_code
    )
    return _no_cache(response)


def _render_error(request: Request, status_code: int, message: str | None):
    context = {
        "request": request,
        "status_code": status_code,
        "message": None,
        "error_message": message or "Something went wrong.",
    }
    return templates.TemplateResponse(
        request, "error.html", context, status_code=status_code
    )


@app.exception_handler(policy.Unauthenticated)
async def unauthenticated_handler(request: Request, exc: policy.Unauthenticated):
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=401)
    target = request.url.path if request.method == "GET" else None
    url = "/sign_in"
    if target:
        url = f"{url}?{urlencode({'next': target})}"
    return _redirect(url)


@app.exception_handler(policy.AuthorizationDenied)
async def authorization_denied_handler(request: Request, exc: policy.AuthorizationDenied):
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=403)
    target = f"/events/{exc.event_id}" if exc.event_id else "/events"
    return _redirect(_with_message(target, str(exc), "alert-warning"))


@app.exception_handler(policy.ValidationError)
async def policy_validation_handler(request: Request, exc: policy.ValidationError):
    if _wants_json(request):
        return JSONResponse({"detail": exc.errors}, status_code=422)
    return _render_error(request, 422, " ".join(exc.errors))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as friendly pages unless JSON was requested."""
    if _wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return _render_error(request, exc.status_code, detail)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    if _wants_json(request):
        return JSONResponse({"detail": detail}, status_code=status)
    return _render_error(request, status, detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if _wants_json(request):
        return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=422)
    return _render_error(
        request,
        422,
        "Some of the fields were invalid. Please double-check and try again.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    if _wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return _render_error(
        request,
        500,
        "We hit a snag while processing that request. Please try again.",
    )


def _ensure_event(db: Session, event_id: str) -> Event:
    event = get_event(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _ensure_visible_event(db: Session, event_id: str, user: User | None) -> Event:
    event = _ensure_event(db, event_id)
    if not policy.can_view(user, event):
        # Unapproved events are hidden from anonymous visitors.
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _require_admin(request: Request, db: Session) -> User:
    user = require_user(request, db)
    if not policy.can_approve(user):
        logger.warning("User %s tried to open the admin overview", user.id)
        raise HTTPException(status_code=403, detail="Admins only")
    return user


def _form_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Values to refill a form after a failed submission."""
    values = dict(fields)
    for key in BOOLEAN_FORM_FIELDS:
        values[key] = policy.parse_bool(values.get(key))
    return values


def _event_values(event: Event) -> dict[str, Any]:
    values = {key: getattr(event, key) for key in policy.EDITABLE_FIELDS}
    for key in policy.DATE_FIELDS:
        values[key] = values[key].isoformat() if values[key] else ""
    return values


class EventLinks(BaseModel):
    public: str
    apply: str
    ics: str


class PublicEvent(BaseModel):
    id: str
    name: str
    description: str | None = None
    website: str | None = None
    code_of_conduct: str | None = None
    city: str | None = None
    country: str | None = None
    organizer_name: str | None = None
    number_of_tickets: int | None = None
    funding: list[str]
    start_date: date
    end_date: date
    deadline: date
    application_process: str
    application_link: str | None = None
    can_apply: bool
    links: EventLinks


class EventListing(BaseModel):
    events: list[PublicEvent]
    has_past_events: bool


def _serialize_event(event: Event, *, current_day: date) -> PublicEvent:
    return PublicEvent(
        id=event.id,
        name=event.name,
        description=event.description,
        website=event.website,
        code_of_conduct=event.code_of_conduct,
        city=event.city,
        country=event.country,
        organizer_name=event.organizer_name,
        number_of_tickets=event.number_of_tickets,
        funding=event.funding,
        start_date=event.start_date,
        end_date=event.end_date,
        deadline=event.deadline,
        application_process=event.application_process,
        application_link=event.application_link,
        can_apply=policy.can_apply(event, current_day),
        links=EventLinks(
            public=f"/events/{event.id}",
            apply=f"/events/{event.id}/apply",
            ics=f"/events/{event.id}/event.ics",
        ),
    )


@app.get("/")
def homepage():
    return _redirect("/events")


@app.get("/events")
def events_index(request: Request, db: Session = Depends(get_db)):
    user = current_user(request, db)
    current_day = today()
    events = listed_events(db, today=current_day)
    return _page(
        request,
        "events/index.html",
        user=user,
        events=events,
        today=current_day,
        can_apply=policy.can_apply,
        show_past_link=has_past_events(db, today=current_day),
    )


@app.get("/events/past")
def events_past(request: Request, db: Session = Depends(get_db)):
    user = current_user(request, db)
    current_day = today()
    return _page(
        request,
        "events/past.html",
        user=user,
        events=past_events(db, today=current_day),
        today=current_day,
    )


@app.get("/events/new")
def new_event(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _page(
        request,
        "events/new.html",
        user=user,
        values={"organizer_email": user.email, "organizer_name": user.name or ""},
        errors=[],
    )


@app.post("/events")
def submit_event(
    request: Request,
    fields: dict[str, Any] = Depends(submitted_fields),
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    try:
        cleaned = policy.clean_submission(fields)
    except policy.ValidationError as exc:
        logger.info("Rejected event submission from %s: %s", user.id, exc)
        return _page(
            request,
            "events/new.html",
            user=user,
            values=_form_values(fields),
            errors=exc.errors,
            status_code=400,
        )
    event = create_event(db, organizer=user, fields=cleaned)
    db.commit()
    mailer.notify_event_submitted(
        event,
        user,
        event_url=str(request.url_for("event_page", event_id=event.id)),
        admin_url=str(request.url_for("admin_overview")),
    )
    return _redirect(_with_message("/events", policy.confirmation_message(event.name)))


@app.post("/events/preview")
def preview_event(
    request: Request,
    fields: dict[str, Any] = Depends(submitted_fields),
    db: Session = Depends(get_db),
):
    user = require_user(request, db)
    try:
        cleaned = policy.clean_submission(fields)
    except policy.ValidationError as exc:
        return _page(
            request,
            "events/new.html",
            user=user,
            values=_form_values(fields),
            errors=exc.errors,
            status_code=400,
        )
    event = build_event(organizer=user, fields=cleaned)
    current_day = today()
    return _page(
        request,
        "events/preview.html",
        user=user,
        event=event,
        values=_form_values(fields),
        today=current_day,
        apply_open=policy.can_apply(event, current_day),
    )


@app.get("/events/{event_id}")
def event_page(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = current_user(request, db)
    event = _ensure_visible_event(db, event_id, user)
    current_day = today()
    return _page(
        request,
        "events/show.html",
        user=user,
        event=event,
        today=current_day,
        apply_open=policy.can_apply(event, current_day),
        can_edit=policy.can_edit(user, event, current_day),
        can_approve=policy.can_approve(user) and not event.approved,
    )


@app.get("/events/{event_id}/edit")
def edit_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    event = _ensure_event(db, event_id)
    policy.ensure_can_edit(user, event, today())
    return _page(
        request,
        "events/edit.html",
        user=user,
        event=event,
        values=_event_values(event),
        errors=[],
        is_admin=policy.role_for(user) is policy.ActorRole.ADMIN,
    )


def _save_event_changes(
    event_id: str, request: Request, fields: dict[str, Any], db: Session
):
    user = require_user(request, db)
    event = _ensure_event(db, event_id)
    policy.ensure_can_edit(user, event, today())
    try:
        changes = policy.clean_update(user, event, fields)
    except policy.ValidationError as exc:
        if _wants_json(request):
            return JSONResponse({"detail": exc.errors}, status_code=422)
        values = _event_values(event)
        values.update(_form_values(fields))
        return _page(
            request,
            "events/edit.html",
            user=user,
            event=event,
            values=values,
            errors=exc.errors,
            is_admin=policy.role_for(user) is policy.ActorRole.ADMIN,
            status_code=400,
        )
    if changes.pop("approved", False):
        policy.approve(user, event)
        logger.info("Event %s approved by %s during edit", event.id, user.id)
    update_event(db, event, changes)
    db.commit()
    logger.info("Event %s updated by %s", event.id, user.id)
    return _redirect(
        _with_message(policy.post_update_redirect(user), f"{event.name} was updated.")
    )


@app.post("/events/{event_id}")
def save_event_form(
    event_id: str,
    request: Request,
    fields: dict[str, Any] = Depends(submitted_fields),
    db: Session = Depends(get_db),
):
    return _save_event_changes(event_id, request, fields, db)


@app.put("/events/{event_id}")
def replace_event(
    event_id: str,
    request: Request,
    fields: dict[str, Any] = Depends(submitted_fields),
    db: Session = Depends(get_db),
):
    return _save_event_changes(event_id, request, fields, db)


@app.get("/events/{event_id}/apply")
def apply_to_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = current_user(request, db)
    event = _ensure_visible_event(db, event_id, user)
    if not policy.can_apply(event, today()):
        return _redirect(
            _with_message(
                f"/events/{event.id}",
                "Applications for this event are closed.",
                "alert-warning",
            )
        )
    if (
        event.application_process == policy.ApplicationProcess.APPLICATION_BY_ORGANIZER
        and event.application_link
    ):
        return _redirect(event.application_link)
    return _page(request, "events/apply.html", user=user, event=event)


@app.get("/events/{event_id}/event.ics")
def event_ics(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = _ensure_visible_event(db, event_id, current_user(request, db))
    return Response(
        content=generate_ics(event),
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="event-{event.id}.ics"'},
    )


@app.get("/users/{user_id}")
def user_page(user_id: str, request: Request, db: Session = Depends(get_db)):
    viewer = require_user(request, db)
    if viewer.id != user_id and not policy.can_approve(viewer):
        raise HTTPException(status_code=403, detail="You can only view your own profile")
    profile = get_user(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    current_day = today()
    events = events_for_organizer(db, profile)
    return _page(
        request,
        "users/show.html",
        user=viewer,
        profile=profile,
        events=events,
        today=current_day,
        editable={e.id for e in events if policy.can_edit(viewer, e, current_day)},
    )


@app.get("/admin")
def admin_overview(
    request: Request,
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    user = _require_admin(request, db)
    approved, pagination = paginate_approved_events(
        db, page=page, per_page=settings.admin_events_per_page
    )
    return _page(
        request,
        "admin/index.html",
        user=user,
        pending=pending_events(db),
        approved=approved,
        pagination=pagination,
        today=today(),
    )


@app.post("/admin/events/{event_id}/approve")
def approve_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    event = _ensure_event(db, event_id)
    changed = policy.approve(user, event)
    if changed:
        save_event(db, event)
        db.commit()
        logger.info("Event %s approved by %s", event.id, user.id)
    return _redirect(_with_message("/admin", f"{event.name} is approved."))


@app.get("/sign_in")
def sign_in_page(
    request: Request,
    next: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    user = current_user(request, db)
    if user:
        return _redirect(_safe_next(next))
    return _page(
        request, "sessions/sign_in.html", user=None, next=next or "", email=""
    )


@app.post("/sign_in")
def sign_in_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: str | None = Form(None),
    db: Session = Depends(get_db),
):
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed sign-in attempt for %s", email.strip().lower())
        return _page(
            request,
            "sessions/sign_in.html",
            user=None,
            next=next or "",
            email=email,
            errors=["Incorrect email or password."],
            status_code=400,
        )
    sign_in(request, user)
    return _redirect(_safe_next(next))


@app.post("/sign_out")
def sign_out_submit(request: Request):
    sign_out(request)
    return _redirect(_with_message("/events", "You have been signed out."))


@app.get("/sign_up")
def sign_up_page(request: Request, db: Session = Depends(get_db)):
    if current_user(request, db):
        return _redirect("/events")
    return _page(request, "users/new.html", user=None, values={}, errors=[])


@app.post("/sign_up")
def sign_up_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    name: str | None = Form(None),
    db: Session = Depends(get_db),
):
    errors: list[str] = []
    if len(password) < 8:
        errors.append("Passwords need at least 8 characters.")
    user = None
    if not errors:
        try:
            user = create_user(db, email=email, password=password, name=name)
        except ValueError as exc:
            errors.append(str(exc))
    if errors or user is None:
        return _page(
            request,
            "users/new.html",
            user=None,
            values={"email": email, "name": name or ""},
            errors=errors,
            status_code=400,
        )
    db.commit()
    sign_in(request, user)
    return _redirect(_with_message("/events", "Welcome! You can now submit events."))


@app.get("/api/v1/events", response_model=EventListing)
def api_list_events(db: Session = Depends(get_db)):
    current_day = today()
    events = listed_events(db, today=current_day)
    return EventListing(
        events=[_serialize_event(e, current_day=current_day) for e in events],
        has_past_events=has_past_events(db, today=current_day),
    )


@app.get("/api/v1/events/{event_id}", response_model=PublicEvent)
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    current_day = today()
    event = _ensure_event(db, event_id)
    if not policy.is_listed(event, current_day):
        raise HTTPException(status_code=404, detail="Event not found")
    return _serialize_event(event, current_day=current_day)


@app.get("/healthz", include_in_schema=False)
def healthcheck():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/favicon.ico", include_in_schema=False)
def favicon():
    return HTMLResponse(status_code=204)
