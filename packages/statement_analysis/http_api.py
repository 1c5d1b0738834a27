"""HTTP surface (FastAPI) over the analysis, checkout, webhook and report flows.

Handlers are plain ``def`` functions: the flows they call block on the
database and upstream providers, so FastAPI runs them in its threadpool.
Every :class:`~statement_analysis.errors.AppError` is rendered as
``{"success": false, "error": <category>, "message": ...}`` with its status.
"""

from __future__ import annotations

from typing import Any

from dotenv import find_dotenv, load_dotenv
from fastapi import Body, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from db.client import session_scope

from . import persistence
from .auth import SupabaseTokenVerifier, TokenVerifier, parse_bearer
from .config import Settings
from .errors import AppError, AuthenticationError, NotFoundError
from .logging_setup import configure_logging, get_logger
from .models import Identity, RequestContext
from .orchestrator import run_analysis
from .payments import BillingClient, create_checkout
from .webhooks import handle_event, signature_from_headers

_logger = get_logger("statement_analysis.http")


class AnalyzeRequest(BaseModel):
    # Left untyped so structural problems surface as validator messages.
    csv_data: Any = None
    anamnesis: dict[str, Any] | None = None
    file_name: str | None = None


class CheckoutRequest(BaseModel):
    package_type: str | None = None
    success_url: str | None = None


def _context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def create_app(
    settings: Settings | None = None,
    *,
    verify_token: TokenVerifier | None = None,
    ai_client: Any | None = None,
    billing_client: BillingClient | None = None,
) -> FastAPI:
    """Build the ASGI application.

    ``verify_token``, ``ai_client`` and ``billing_client`` default to the
    production adapters built from ``settings``.
    """

    cfg = settings or Settings.from_env()
    app = FastAPI(title="statement-analysis")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_origins),
        allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    verifier_cache: list[TokenVerifier] = [verify_token] if verify_token is not None else []

    def _verifier() -> TokenVerifier:
        if not verifier_cache:
            verifier_cache.append(SupabaseTokenVerifier.from_settings(cfg))
        return verifier_cache[0]

    def _identity(authorization: str | None) -> Identity:
        token = parse_bearer(authorization)
        if token is None:
            raise AuthenticationError("Missing Authorization header")
        identity = _verifier()(token)
        if identity is None:
            raise AuthenticationError("Invalid token")
        return identity

    # ---- error rendering ---------------------------------------------------

    @app.exception_handler(AppError)
    def _app_error(_request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    def _bad_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "invalid_request",
                "message": "Invalid request body",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        _logger.exception("http:unhandled path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "message": "Server Error"},
        )

    # ---- routes ------------------------------------------------------------

    @app.post("/analyze")
    def analyze(
        body: AnalyzeRequest,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> dict[str, Any]:
        outcome = run_analysis(
            parse_bearer(authorization),
            body.csv_data,
            body.anamnesis,
            verify_token=lambda t: _verifier()(t),
            settings=cfg,
            context=_context(request),
            file_name=body.file_name,
            ai_client=ai_client,
        )
        return outcome.to_payload()

    @app.post("/create-checkout")
    def checkout(
        body: CheckoutRequest,
        request: Request,
        authorization: str | None = Header(default=None),
        origin: str | None = Header(default=None),
    ) -> dict[str, Any]:
        result = create_checkout(
            parse_bearer(authorization),
            body.package_type,
            body.success_url,
            verify_token=lambda t: _verifier()(t),
            settings=cfg,
            context=_context(request),
            origin=origin,
            billing_client=billing_client,
        )
        return result.to_payload()

    @app.post("/webhook")
    def webhook(request: Request, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        return handle_event(
            payload,
            signature=signature_from_headers(request.headers),
            settings=cfg,
            context=_context(request),
        )

    @app.api_route("/webhook", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    def webhook_ping() -> str:
        return "ok"

    @app.get("/reports")
    def reports(
        limit: int = 20, authorization: str | None = Header(default=None)
    ) -> dict[str, Any]:
        identity = _identity(authorization)
        with session_scope(database_url=cfg.database_url) as session:
            found = persistence.list_reports(session, identity.user_id, limit=min(limit, 100))
            items = [persistence.report_to_dict(r, include_raw=False) for r in found]
        return {"success": True, "reports": items}

    @app.get("/reports/latest")
    def latest(authorization: str | None = Header(default=None)) -> dict[str, Any]:
        identity = _identity(authorization)
        with session_scope(database_url=cfg.database_url) as session:
            report = persistence.latest_report(session, identity.user_id)
            if report is None:
                raise NotFoundError("No reports found")
            return {"success": True, "report": persistence.report_to_dict(report)}

    @app.get("/reports/{report_id}")
    def report_by_id(
        report_id: str, authorization: str | None = Header(default=None)
    ) -> dict[str, Any]:
        identity = _identity(authorization)
        with session_scope(database_url=cfg.database_url) as session:
            report = persistence.get_report(session, identity.user_id, report_id)
            if report is None:
                raise NotFoundError("Report not found")
            return {"success": True, "report": persistence.report_to_dict(report)}

    return app


def app_factory() -> FastAPI:
    """ASGI factory for ``uvicorn --factory``: loads ``.env`` and configures logging."""

    load_dotenv(find_dotenv(usecwd=True), override=False)
    configure_logging()
    return create_app()


__all__ = ["create_app", "app_factory", "AnalyzeRequest", "CheckoutRequest"]
