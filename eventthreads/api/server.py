"""FastAPI server exposing the thread operations.

Each route resolves the caller from the ``userId`` it receives, then
delegates to the registry, engine or admin projection. Errors raised
there are rendered by ``error_handlers``.
"""

import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.settings import Settings
from ..events.bus import EventBus
from ..events.handlers import AuditHandler
from ..exceptions import ValidationError
from ..security.auth import AuthenticationManager
from ..storage.facade import Storage
from ..threads import (
    AdminProjection,
    MembershipEngine,
    ThreadLocks,
    ThreadRegistry,
    UserContext,
)
from ..threads.context import Clock, utc_now
from .error_handlers import register_error_handlers
from .schemas import (
    CreateThreadRequest,
    DashboardOut,
    LoginRequest,
    MessageOut,
    PostMessageRequest,
    ResolveRequestBody,
    ThreadOut,
    UpdateThreadRequest,
    UserOut,
    UserRequest,
)

logger = structlog.get_logger()

ANONYMOUS = UserContext(user_id="", username="")


@dataclass
class ThreadServices:
    """Components shared by all request handlers."""

    storage: Storage
    auth: AuthenticationManager
    registry: ThreadRegistry
    engine: MembershipEngine
    admin: AdminProjection
    event_bus: EventBus


def build_services(
    settings: Settings,
    storage: Storage,
    event_bus: EventBus,
    clock: Clock = utc_now,
) -> ThreadServices:
    """Wire registry, engine, admin projection and auth over one storage."""
    registry = ThreadRegistry(
        storage,
        locks=ThreadLocks(),
        allowed_durations=settings.allowed_thread_durations,
        clock=clock,
        event_bus=event_bus,
    )
    return ThreadServices(
        storage=storage,
        auth=AuthenticationManager(
            storage.users, admin_password=settings.admin_password_str, clock=clock
        ),
        registry=registry,
        engine=MembershipEngine(registry),
        admin=AdminProjection(registry),
        event_bus=event_bus,
    )


def duration_from_expiry(expires_at: datetime, now: datetime) -> int:
    """Round a legacy absolute expiry to whole hours from now."""
    if expires_at.tzinfo is None:
        raise ValidationError("expiresAt must include a timezone")
    hours = (expires_at - now).total_seconds() / 3600
    return int(math.floor(hours + 0.5))


def create_api_app(
    settings: Settings,
    event_bus: Optional[EventBus] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Create the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        storage = Storage(settings.database_url)
        await storage.initialize()

        bus = event_bus or EventBus()
        await bus.start()

        audit_handler: Optional[AuditHandler] = None
        if settings.enable_audit_log:
            audit_handler = AuditHandler(bus, storage.audit)
            audit_handler.register()

        app.state.services = build_services(settings, storage, bus, clock)
        logger.info("API services ready", audit_log=settings.enable_audit_log)
        try:
            yield
        finally:
            await bus.stop()
            if audit_handler is not None:
                audit_handler.unregister()
            await storage.close()
            logger.info("API services stopped")

    app = FastAPI(
        title="EventThreads API",
        version=__version__,
        docs_url="/docs" if settings.development_mode else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    def services(request: Request) -> ThreadServices:
        return request.app.state.services

    @app.get("/health")
    async def health_check(request: Request) -> Dict[str, Any]:
        healthy = await services(request).storage.health_check()
        return {"status": "ok" if healthy else "degraded", "database": healthy}

    @app.post("/api/auth/login")
    async def login(body: LoginRequest, request: Request) -> Dict[str, Any]:
        caller = await services(request).auth.login(
            body.username, body.password, body.is_admin
        )
        return {"success": True, "user": UserOut.from_context(caller).to_json()}

    @app.get("/api/threads")
    async def list_threads(
        request: Request, user_id: Optional[str] = Query(None, alias="userId")
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(user_id) if user_id else ANONYMOUS
        threads = await svc.registry.list_active()
        return {
            "success": True,
            "threads": [
                ThreadOut.from_model(svc.engine.view_thread(thread, caller)).to_json()
                for thread in threads
            ],
        }

    @app.get("/api/threads/{thread_id}")
    async def get_thread(
        thread_id: str,
        request: Request,
        user_id: Optional[str] = Query(None, alias="userId"),
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(user_id) if user_id else ANONYMOUS
        thread = await svc.registry.get_by_id(thread_id)
        return {
            "success": True,
            "thread": ThreadOut.from_model(
                svc.engine.view_thread(thread, caller)
            ).to_json(),
        }

    @app.post("/api/threads")
    async def create_thread(
        body: CreateThreadRequest, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.creator_id)

        duration_hours = body.duration_hours
        if duration_hours is None:
            if body.expires_at is None:
                raise ValidationError("durationHours is required")
            duration_hours = duration_from_expiry(body.expires_at, clock())

        thread = await svc.registry.create_thread(
            caller,
            title=body.title,
            description=body.description,
            location=body.location,
            tags=body.tags,
            duration_hours=duration_hours,
        )
        return {"success": True, "thread": ThreadOut.from_model(thread).to_json()}

    @app.put("/api/threads/{thread_id}")
    async def update_thread(
        thread_id: str, body: UpdateThreadRequest, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.user_id)
        thread = await svc.registry.update_thread(thread_id, caller, body.changes())
        return {"success": True, "thread": ThreadOut.from_model(thread).to_json()}

    @app.delete("/api/threads/{thread_id}")
    async def delete_thread(
        thread_id: str, body: UserRequest, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.user_id)
        if caller.is_admin:
            await svc.admin.delete_thread(caller, thread_id)
        else:
            await svc.registry.delete_thread(
                thread_id, caller.user_id, is_requester_admin=False
            )
        return {"success": True}

    @app.post("/api/threads/{thread_id}/join")
    async def request_join(
        thread_id: str, body: UserRequest, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.user_id)
        await svc.engine.request_join(thread_id, caller)
        return {"success": True}

    @app.post("/api/threads/{thread_id}/requests")
    async def resolve_request(
        thread_id: str, body: ResolveRequestBody, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.current_user_id)
        await svc.engine.resolve_request(
            thread_id, body.user_id, approve=body.approve, caller=caller
        )
        return {"success": True}

    @app.post("/api/threads/{thread_id}/messages")
    async def post_message(
        thread_id: str, body: PostMessageRequest, request: Request
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(body.user_id)
        message = await svc.engine.post_message(thread_id, caller, body.message)
        return {"success": True, "message": MessageOut.from_model(message).to_json()}

    @app.get("/api/admin/dashboard")
    async def admin_dashboard(
        request: Request, user_id: Optional[str] = Query(None, alias="userId")
    ) -> Dict[str, Any]:
        svc = services(request)
        caller = await svc.auth.resolve(user_id)
        dashboard = await svc.admin.dashboard(caller)
        return {"success": True, "data": DashboardOut.from_dashboard(dashboard).to_json()}

    return app


async def run_api_server(settings: Settings) -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    app = create_api_app(settings)

    config = uvicorn.Config(
        app=app,
        host=settings.api_server_host,
        port=settings.api_server_port,
        log_level="info" if not settings.debug else "debug",
    )
    server = uvicorn.Server(config)
    await server.serve()
