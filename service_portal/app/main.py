"""
Campus portal API service.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from fastapi import BackgroundTasks, Depends, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import NotFoundError, PortalException, AuthorizationError, ValidationError
from .adapters.providers import GeminiAdapter, GroqAdapter, OpenRouterAdapter, ProviderAdapter
from .adapters.search_client import ContextRetriever, SearchSnippet
from .adapters.sheets_client import SheetStore, TableStore
from .auth.admin_session import AdminAuthenticator
from .auth.service_account import CredentialSigner, TokenCache
from .domain.analytics import AdminAnalytics
from .domain.models import (
    CHAT_STATUS_ERROR,
    CHAT_STATUS_SUCCESS,
    ChatLogEntry,
    isoformat_utc,
    parse_iso_datetime,
    utcnow,
)
from .domain.registration import RegistrationService
from .domain.repositories import (
    ChatLogRepository,
    Clock,
    EventRepository,
    NoticeRepository,
    RegistrationRepository,
    initialize_tables,
)
from .domain.schema import EVENTS
from .domain.validation import (
    ChatRequest,
    EventCreateRequest,
    FeedbackRequest,
    LoginRequest,
    NoticeCreateRequest,
    RegistrationRequest,
    is_valid_email,
)
from .orchestration.fallback import FallbackOrchestrator
from .orchestration.formatting import format_html
from .ratelimit.fixed_window import FixedWindowRateLimiter, rate_limit

SERVICE_NAME = "portal"
SERVICE_PORT = 8080
API_VERSION = "1.0.0"


class PortalService(BaseService):
    """Chat, events, notices, registration and admin API."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[TableStore] = None,
        retriever: Optional[ContextRetriever] = None,
        providers: Optional[Sequence[ProviderAdapter]] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        authenticator: Optional[AdminAuthenticator] = None,
        clock: Clock = utcnow,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))
        self._clock = clock
        self._owned_clients: List[Any] = []

        self.store = store or self._build_store()
        self.retriever = retriever or self._own(ContextRetriever(
            self.config.google_cse_api_key,
            self.config.google_cse_id,
            site=self.config.search_site,
            max_results=self.config.search_max_results,
            timeout=self.config.http_timeout_seconds,
        ))
        self.providers = list(providers) if providers is not None else self._build_providers()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            self.config.rate_limits(),
            self.config.rate_limit_window_seconds,
            metrics=self.metrics,
        )
        self.authenticator = authenticator or AdminAuthenticator(
            self.config.admin_api_key,
            self.config.admin_session_secret,
            admin_email=self.config.admin_email,
            session_ttl_seconds=self.config.admin_session_ttl_seconds,
        )

        self.events = EventRepository(self.store, clock=clock)
        self.notices = NoticeRepository(self.store, clock=clock)
        self.registrations = RegistrationRepository(self.store, clock=clock)
        self.chat_logs = ChatLogRepository(self.store)
        self.registration_service = RegistrationService(self.events, self.registrations, clock=clock)
        self.analytics = AdminAnalytics(
            self.events, self.notices, self.registrations, self.chat_logs, clock=clock
        )
        self.orchestrator = FallbackOrchestrator(self.providers, self.retriever, metrics=self.metrics)

        @self.app.on_event("shutdown")
        async def _shutdown():
            for client in self._owned_clients:
                await client.close()

        self._setup_portal_routes()
        self._setup_chat_routes()
        self._setup_event_routes()
        self._setup_notice_routes()
        self._setup_registration_routes()
        self._setup_admin_routes()

    def _own(self, client):
        self._owned_clients.append(client)
        return client

    def _build_store(self) -> SheetStore:
        signer = CredentialSigner(
            self.config.google_service_account_email,
            self.config.google_service_account_private_key,
            audience=self.config.google_token_uri,
        )
        token_cache = self._own(TokenCache(
            signer,
            token_uri=self.config.google_token_uri,
            timeout=self.config.http_timeout_seconds,
            metrics=self.metrics,
        ))
        return self._own(SheetStore(
            self.config.google_sheet_id,
            token_cache,
            base_url=self.config.sheets_api_base,
            timeout=self.config.http_timeout_seconds,
            metrics=self.metrics,
        ))

    def _build_providers(self) -> List[ProviderAdapter]:
        timeout = self.config.provider_timeout_seconds
        return [
            self._own(GeminiAdapter(self.config.gemini_api_key, self.config.gemini_model, timeout=timeout)),
            self._own(GroqAdapter(self.config.groq_api_key, self.config.groq_model, timeout=timeout)),
            self._own(OpenRouterAdapter(
                self.config.openrouter_api_key,
                self.config.openrouter_model,
                referer=self.config.app_base_url,
                timeout=timeout,
            )),
        ]

    def _now_iso(self) -> str:
        return isoformat_utc(self._clock())

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            "store": "configured" if self.config.google_sheet_id else "missing",
            "search": "configured" if self.retriever.configured else "missing",
            "providers": {
                provider.name: "configured" if provider.configured else "missing"
                for provider in self.providers
            },
        }

    async def _log_quietly(self, entry: ChatLogEntry):
        """Background chat logging; store failures never reach the caller."""
        try:
            await self.chat_logs.log(entry)
        except PortalException as e:
            self.logger.warning("Failed to log chat", code=e.code, error=e.error)

    def _setup_portal_routes(self):
        """Service-level routes."""

        @self.app.get("/api/health")
        async def api_health():
            return {
                "status": "ok",
                "message": "IFHE Campus Assistant Portal API is running",
                "timestamp": self._now_iso(),
                "version": API_VERSION,
            }

    def _setup_chat_routes(self):
        """Chat endpoints."""
        chat_limit = [Depends(rate_limit(self.rate_limiter, "chat"))]

        @self.app.post("/api/chat", dependencies=chat_limit)
        async def chat(body: ChatRequest, background_tasks: BackgroundTasks):
            timestamp = self._now_iso()
            result = await self.orchestrator.answer(body.question)
            answer_html = format_html(result.answer, result.sources)

            entry = ChatLogEntry(
                timestamp=timestamp,
                user_email=body.user_email or "",
                user_name=(body.user_name or "").strip(),
                question=body.question,
                model_used=result.provider_id,
                status=CHAT_STATUS_ERROR if result.exhausted else CHAT_STATUS_SUCCESS,
                raw_response=result.answer,
                final_answer_html=answer_html,
                source_links=_serialize_sources(result.sources),
                error="all providers failed" if result.exhausted else "",
            )
            background_tasks.add_task(self._log_quietly, entry)

            response: Dict[str, Any] = {
                "html": answer_html,
                "model_used": result.provider_id,
                "timestamp": timestamp,
            }
            if result.sources:
                response["source_links"] = [source.link for source in result.sources]
            return response

        @self.app.get("/api/chat/test", dependencies=chat_limit)
        async def chat_test():
            return {
                "status": "ok",
                "message": "IFHE Campus Assistant Chat API is running",
                "timestamp": self._now_iso(),
            }

        @self.app.post("/api/chat/feedback", dependencies=chat_limit)
        async def chat_feedback(body: FeedbackRequest):
            entry = ChatLogEntry(
                timestamp=self._now_iso(),
                user_email=(body.user_email or "").strip(),
                user_name="Feedback",
                question=f"FEEDBACK ({body.rating}/5): {body.question or ''}",
                model_used="feedback",
                status=CHAT_STATUS_SUCCESS,
                final_answer_html=body.feedback or "No additional feedback",
                source_links=f"Rating: {body.rating}/5",
            )
            await self.chat_logs.log(entry)
            return {"success": True, "message": "Thank you for your feedback!"}

    def _setup_event_routes(self):
        """Event listing and admin management."""
        read_limit = Depends(rate_limit(self.rate_limiter, "read"))
        admin_only = Depends(self.authenticator.require_admin)

        @self.app.get("/api/events", dependencies=[read_limit])
        async def list_events():
            events = await self.events.list_upcoming()
            return {"success": True, "events": [event.to_dict() for event in events], "count": len(events)}

        @self.app.get("/api/events/category/{category}", dependencies=[read_limit])
        async def events_by_category(category: str):
            term = category.lower()
            events = [
                event for event in await self.events.list_upcoming()
                if term in event.title.lower() or term in event.description.lower()
            ]
            return {
                "success": True,
                "events": [event.to_dict() for event in events],
                "category": category,
                "count": len(events),
            }

        @self.app.post("/api/events/admin", dependencies=[read_limit, admin_only])
        async def create_event(body: EventCreateRequest):
            starts_at = parse_iso_datetime(body.date_iso)
            if starts_at is None:
                raise ValidationError.for_fields({"date_iso": "Invalid date format"})
            if starts_at <= self._clock():
                raise ValidationError.for_fields({"date_iso": "Event date must be in the future"})

            event = await self.events.create(
                title=body.title,
                description=body.description,
                date_iso=body.date_iso,
                location=body.location,
                rsvp_form=body.rsvp_form or "",
                visible=body.visible,
            )
            return {"success": True, "message": "Event created successfully", "event": event.to_dict()}

        @self.app.get("/api/events/admin/all", dependencies=[read_limit, admin_only])
        async def all_events():
            events = sorted(
                await self.events.list_all(),
                key=lambda event: event.created_at,
                reverse=True,
            )
            return {"success": True, "events": [event.to_dict() for event in events], "count": len(events)}

        @self.app.delete("/api/events/admin/{event_id}", dependencies=[read_limit, admin_only])
        async def hide_event(event_id: str):
            event = await self.events.hide(event_id)
            return {"success": True, "message": "Event hidden successfully", "event": event.to_dict()}

        @self.app.get("/api/events/{event_id}", dependencies=[read_limit])
        async def get_event(event_id: str):
            event = await self.events.find_upcoming(event_id)
            if event is None:
                raise NotFoundError("Event not found", details={"event_id": event_id})
            return {"success": True, "event": event.to_dict()}

    def _setup_notice_routes(self):
        """Notice board and admin management."""
        read_limit = Depends(rate_limit(self.rate_limiter, "read"))
        admin_only = Depends(self.authenticator.require_admin)

        @self.app.get("/api/notices", dependencies=[read_limit])
        async def list_notices():
            notices = await self.notices.list_visible()
            return {"success": True, "notices": [notice.to_dict() for notice in notices], "count": len(notices)}

        @self.app.get("/api/notices/categories", dependencies=[read_limit])
        async def notice_categories():
            counts: Dict[str, int] = {}
            for notice in await self.notices.list_visible():
                if notice.category:
                    counts[notice.category] = counts.get(notice.category, 0) + 1
            return {
                "success": True,
                "categories": [{"name": name, "count": count} for name, count in counts.items()],
            }

        @self.app.get("/api/notices/category/{category}", dependencies=[read_limit])
        async def notices_by_category(category: str):
            term = category.lower()
            notices = [notice for notice in await self.notices.list_visible() if term in notice.category.lower()]
            return {
                "success": True,
                "notices": [notice.to_dict() for notice in notices],
                "category": term,
                "count": len(notices),
            }

        @self.app.get("/api/notices/recent/{days}", dependencies=[read_limit])
        async def recent_notices(days: str):
            try:
                window = int(days) or 7
            except ValueError:
                window = 7
            notices = await self.notices.list_recent(window)
            return {
                "success": True,
                "notices": [notice.to_dict() for notice in notices],
                "days": window,
                "count": len(notices),
            }

        @self.app.post("/api/notices/admin", dependencies=[read_limit, admin_only])
        async def create_notice(body: NoticeCreateRequest):
            if body.posted_at_iso and parse_iso_datetime(body.posted_at_iso) is None:
                raise ValidationError.for_fields({"posted_at_iso": "Invalid date format"})
            notice = await self.notices.create(
                title=body.title,
                body_html=body.body_html,
                category=body.category,
                posted_at_iso=body.posted_at_iso,
                visible=body.visible,
            )
            return {"success": True, "message": "Notice created successfully", "notice": notice.to_dict()}

        @self.app.get("/api/notices/admin/all", dependencies=[read_limit, admin_only])
        async def all_notices():
            notices = await self.notices.list_all()
            return {"success": True, "notices": [notice.to_dict() for notice in notices], "count": len(notices)}

        @self.app.delete("/api/notices/admin/{notice_id}", dependencies=[read_limit, admin_only])
        async def hide_notice(notice_id: str):
            notice = await self.notices.hide(notice_id)
            return {"success": True, "message": "Notice hidden successfully", "notice": notice.to_dict()}

        @self.app.get("/api/notices/{notice_id}", dependencies=[read_limit])
        async def get_notice(notice_id: str):
            notice = await self.notices.find_visible(notice_id)
            if notice is None:
                raise NotFoundError("Notice not found", details={"notice_id": notice_id})
            return {"success": True, "notice": notice.to_dict()}

    def _setup_registration_routes(self):
        """Event registration."""
        registration_limit = Depends(rate_limit(self.rate_limiter, "registration"))
        admin_only = Depends(self.authenticator.require_admin)

        @self.app.post("/api/register", dependencies=[registration_limit])
        async def register(body: RegistrationRequest):
            registration = await self.registration_service.register(body)
            return {
                "success": True,
                "message": "Registration successful!",
                "registration": registration,
            }

        @self.app.get("/api/register/verify/{email}/{event_id}", dependencies=[registration_limit])
        async def verify_registration(email: str, event_id: str):
            email = email.lower()
            if not is_valid_email(email):
                raise ValidationError.for_fields({"email": "Invalid email format"})
            return await self.registration_service.verify(email, event_id)

        @self.app.get("/api/register/stats", dependencies=[registration_limit])
        async def registration_stats():
            return await self.registration_service.stats()

        @self.app.get("/api/register/admin/all", dependencies=[registration_limit, admin_only])
        async def all_registrations():
            registrations = await self.registration_service.list_newest_first()
            return {
                "success": True,
                "registrations": [registration.to_dict() for registration in registrations],
                "count": len(registrations),
            }

        @self.app.get("/api/register/admin/event/{event_id}", dependencies=[registration_limit, admin_only])
        async def event_registrations(event_id: str):
            result = await self.registration_service.list_for_event(event_id)
            return {"success": True, **result}

    def _setup_admin_routes(self):
        """Admin login, dashboards and maintenance."""
        admin_limit = Depends(rate_limit(self.rate_limiter, "admin"))
        admin_only = Depends(self.authenticator.require_admin)

        @self.app.post("/api/admin/login", dependencies=[admin_limit])
        async def admin_login(body: LoginRequest):
            if not self.authenticator.validate_api_key(body.api_key):
                raise AuthorizationError("Invalid API key", "Access denied")
            email = self.authenticator.admin_email
            token = self.authenticator.issue_session_token(email)
            self.logger.info("Admin session issued", email=email)
            return {
                "success": True,
                "message": "Login successful",
                "token": token,
                "expires_in": self.authenticator.session_ttl_seconds,
                "user": {"email": email, "role": "admin"},
            }

        @self.app.get("/api/admin/dashboard", dependencies=[admin_limit, admin_only])
        async def admin_dashboard():
            return {"success": True, "dashboard": await self.analytics.dashboard()}

        @self.app.get("/api/admin/chat-logs", dependencies=[admin_limit, admin_only])
        async def admin_chat_logs(
            limit: int = Query(50, ge=0),
            offset: int = Query(0, ge=0),
            status: Optional[str] = Query(None),
        ):
            page = await self.analytics.chat_logs_page(limit=limit, offset=offset, status=status)
            return {"success": True, **page}

        @self.app.get("/api/admin/analytics", dependencies=[admin_limit, admin_only])
        async def admin_analytics(days: int = Query(7, ge=1)):
            return {"success": True, "analytics": await self.analytics.analytics(days)}

        @self.app.get("/api/admin/system-status", dependencies=[admin_limit, admin_only])
        async def system_status():
            checks: List[Dict[str, Any]] = []
            try:
                await self.store.read_range(EVENTS.name, "A1:A1")
                checks.append({"service": "Google Sheets", "status": "healthy", "message": "Connected successfully"})
            except PortalException as e:
                checks.append({"service": "Google Sheets", "status": "error", "message": e.message or e.error})

            for provider in self.providers:
                checks.append({
                    "service": f"{provider.name} API",
                    "status": "configured" if provider.configured else "missing",
                    "message": "API key configured" if provider.configured else "API key not set",
                })

            checks.append({
                "service": "Context Search",
                "status": "configured" if self.retriever.configured else "missing",
                "message": "Search engine configured" if self.retriever.configured else "Search engine not set",
            })

            healthy = all(check["status"] in ("healthy", "configured") for check in checks)
            return {
                "success": True,
                "overall_status": "healthy" if healthy else "degraded",
                "timestamp": self._now_iso(),
                "checks": checks,
            }

        @self.app.post("/api/admin/init-tables", dependencies=[admin_limit, admin_only])
        async def init_tables():
            tables = await initialize_tables(self.store)
            return {"success": True, "tables": tables}


def _serialize_sources(sources: Sequence[SearchSnippet]) -> str:
    if not sources:
        return ""
    return json.dumps([
        {"title": source.title, "link": source.link, "snippet": source.excerpt}
        for source in sources
    ])


def create_app():
    """Create FastAPI application."""
    service = PortalService()
    return service.app


if __name__ == "__main__":
    service = PortalService()
    service.run()
