"""Static information pages."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from .config import settings


def _page_response(templates: Jinja2Templates, request: Request, template_name: str):
    return templates.TemplateResponse(
        request,
        template_name,
        {"request": request, "admin_email": settings.admin_email},
    )


def register_web_routes(app, templates: Jinja2Templates):
    """Register the about and privacy pages on the FastAPI app."""

    def about_page(request: Request):
        """Explain how submissions and approvals work."""
        return _page_response(templates, request, "help/about.html")

    def privacy_page(request: Request):
        """Describe how applicant data must be handled."""
        return _page_response(templates, request, "help/privacy.html")

    app.get("/about", response_class=HTMLResponse)(about_page)
    app.get("/privacy", response_class=HTMLResponse)(privacy_page)
