from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
import hashlib
import hmac
import logging
from os import getenv
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from assistant import ChatAssistant, Conversation
from auth import AuthClient, AuthError, AuthService, UserSession
from backend import BackendError, get_backend
from billing import BillingError, cancel_subscription, current_subscription
from generation import GenerationError, has_pending
from generation.avatar import AvatarClient, AvatarRequest, store_avatar_image
from generation.video import VideoClient, apply_webhook_event
from llm import LLMError, get_client
from pipeline.queue import PlannerRow, enqueue_planner_rows
from plans import PlanLimitResolver, QuotaExceeded, require_quota
from plans.admin import AdminService
from plans.catalog import checkout_url, get_catalog, scheduling_url
from stores import ContentStore, InfluencerStore, WebhookStore
from support import TicketService

logger = logging.getLogger(__name__)

app = FastAPI(title="AI Influencer API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_AUTH_STATUS = {
    "user_exists": 409,
    "signup_failed": 400,
    "login_failed": 401,
    "invalid_token": 401,
    "not_logged_in": 401,
}


@app.exception_handler(ValueError)
def _value_error(_request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(AuthError)
def _auth_error(_request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(status_code=_AUTH_STATUS.get(exc.code, 502), content={"detail": exc.code})


@app.exception_handler(BackendError)
def _backend_error(_request: Request, exc: BackendError) -> JSONResponse:
    if exc.code == "not_found":
        return JSONResponse(status_code=404, content={"detail": "not_found"})
    logger.error("backend call failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "backend_unavailable"})


@app.exception_handler(LLMError)
def _llm_error(_request: Request, exc: LLMError) -> JSONResponse:
    if exc.code == "missing_api_key":
        return JSONResponse(status_code=400, content={"detail": "openai_key_required"})
    logger.error("llm call failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "llm_unavailable"})


@app.exception_handler(GenerationError)
def _generation_error(_request: Request, exc: GenerationError) -> JSONResponse:
    if exc.code == "missing_api_key":
        return JSONResponse(status_code=400, content={"detail": f"{exc.provider}_key_required"})
    return JSONResponse(status_code=502, content={"detail": exc.code, "message": exc.message})


@app.exception_handler(QuotaExceeded)
def _quota_exceeded(_request: Request, exc: QuotaExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=402,
        content={"detail": "quota_exceeded", "feature": exc.feature, "limit": exc.limit, "used": exc.used},
    )


@app.exception_handler(BillingError)
def _billing_error(_request: Request, exc: BillingError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": "billing_failed", "message": exc.message})


def get_auth_client() -> AuthClient:
    return AuthClient()


def _auth_service() -> AuthService:
    return AuthService(get_auth_client(), get_backend())


def _current_session(authorization: str | None = Header(default=None)) -> UserSession:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="bearer_token_required")
    return _auth_service().session_for_token(token.strip())


def _require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    expected = getenv("ADMIN_TOKEN", "")
    if not expected:
        if getenv("ALLOW_ADMIN_WITHOUT_TOKEN", "0") == "1":
            return
        raise HTTPException(status_code=503, detail="admin_token_missing")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="admin_token_required")


def _session_payload(session: UserSession) -> dict:
    return {
        "user_id": session.user_id,
        "email": session.email,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "has_openai_key": bool(session.openai_api_key),
        "has_heygen_key": bool(session.heygen_api_key),
    }


def _content_store(session: UserSession) -> ContentStore:
    return ContentStore(
        session,
        get_backend(),
        llm_client=get_client(),
        video_client_factory=lambda api_key: VideoClient(api_key),
    )


def _owned_influencer(session: UserSession, influencer_id: str):
    store = InfluencerStore(session, get_backend())
    store.fetch()
    influencer = store.get(influencer_id)
    if influencer is None:
        raise HTTPException(status_code=404, detail="influencer_not_found")
    return influencer


def _plan_limits(session: UserSession):
    limits = PlanLimitResolver(get_backend().with_token(session.access_token)).resolve(
        session.email, session.user_id
    )
    if limits.error:
        raise HTTPException(status_code=502, detail="plan_limits_unavailable")
    return limits


class Credentials(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class ApiKeysRequest(BaseModel):
    openai_api_key: Optional[str] = None
    heygen_api_key: Optional[str] = None


class InfluencerCreate(BaseModel):
    name: str = Field(min_length=1)
    template_id: str = Field(min_length=1)


class InfluencerUpdate(BaseModel):
    name: Optional[str] = None
    template_id: Optional[str] = None


class ContentItemIn(BaseModel):
    id: str
    status: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None

    model_config = {"extra": "allow"}


class RefreshRequest(BaseModel):
    items: list[ContentItemIn] = Field(default_factory=list)


class VideoRequest(BaseModel):
    title: str = Field(min_length=1)
    script: str = Field(min_length=1)


class ScriptRequest(BaseModel):
    prompt: str = Field(min_length=1)
    action: Literal["write", "shorten", "longer", "engaging"] = "write"


class DeleteContentRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class WebhookCreate(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(default_factory=list)
    text: str


class TicketRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(min_length=1)


class AvatarGenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    seed: Optional[int] = None
    aspect_ratio: Literal["1:1", "16:9", "9:16", "4:3", "3:4", "21:9", "9:21"] = "9:16"
    safety_tolerance: int = Field(default=2, ge=0, le=6)
    output_format: Literal["jpeg", "png"] = "jpeg"


class PlannerRowIn(BaseModel):
    influencer_id: str
    title: str = ""
    prompt: str = ""
    cta: str = ""
    script: str = ""
    selected: bool = True


class PlannerRequest(BaseModel):
    rows: list[PlannerRowIn] = Field(min_length=1)
    scheduled_at: Optional[datetime] = None


class TicketStatusRequest(BaseModel):
    status: str


class AdminInfluencerCreate(BaseModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    template_id: str = Field(min_length=1)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup")
def signup(payload: Credentials) -> dict:
    result = _auth_service().sign_up(payload.email, payload.password)
    return {
        "needs_email_confirmation": result.needs_email_confirmation,
        "session": _session_payload(result.session) if result.session else None,
    }


@app.post("/auth/login")
def login(payload: Credentials) -> dict:
    return _session_payload(_auth_service().log_in(payload.email, payload.password))


@app.post("/auth/logout")
def logout(session: UserSession = Depends(_current_session)) -> dict:
    _auth_service().log_out(session)
    return {"ok": True}


@app.get("/me")
def me(session: UserSession = Depends(_current_session)) -> dict:
    payload = _session_payload(session)
    payload.pop("access_token")
    payload.pop("refresh_token")
    return payload


@app.put("/me/api-keys")
def update_api_keys(payload: ApiKeysRequest, session: UserSession = Depends(_current_session)) -> dict:
    updated = _auth_service().update_api_keys(session, payload.openai_api_key, payload.heygen_api_key)
    return {"has_openai_key": bool(updated.openai_api_key), "has_heygen_key": bool(updated.heygen_api_key)}


@app.get("/influencers")
def list_influencers(session: UserSession = Depends(_current_session)) -> dict:
    influencers = InfluencerStore(session, get_backend()).fetch()
    return {"items": [asdict(influencer) for influencer in influencers]}


@app.post("/influencers", status_code=201)
def create_influencer(payload: InfluencerCreate, session: UserSession = Depends(_current_session)) -> dict:
    return asdict(InfluencerStore(session, get_backend()).add(payload.name, payload.template_id))


@app.patch("/influencers/{influencer_id}")
def update_influencer(
    influencer_id: str,
    payload: InfluencerUpdate,
    session: UserSession = Depends(_current_session),
) -> dict:
    _owned_influencer(session, influencer_id)
    store = InfluencerStore(session, get_backend())
    store.fetch()
    updated = store.update(influencer_id, name=payload.name, template_id=payload.template_id)
    return asdict(updated)


@app.delete("/influencers/{influencer_id}")
def delete_influencer(influencer_id: str, session: UserSession = Depends(_current_session)) -> dict:
    _owned_influencer(session, influencer_id)
    InfluencerStore(session, get_backend()).delete(influencer_id)
    return {"ok": True}


@app.get("/influencers/{influencer_id}/content")
def list_content(influencer_id: str, session: UserSession = Depends(_current_session)) -> dict:
    _owned_influencer(session, influencer_id)
    store = _content_store(session)
    items = store.fetch(influencer_id)
    return {"items": items, "in_queue": store.in_queue(influencer_id), "pending": has_pending(items)}


@app.post("/influencers/{influencer_id}/content/refresh")
def refresh_content(
    influencer_id: str,
    payload: RefreshRequest,
    session: UserSession = Depends(_current_session),
) -> dict:
    _owned_influencer(session, influencer_id)
    store = _content_store(session)
    store.replace(influencer_id, [item.model_dump() for item in payload.items])
    items = store.refresh(influencer_id)
    return {"items": items, "in_queue": store.in_queue(influencer_id), "pending": has_pending(items)}


@app.post("/influencers/{influencer_id}/content", status_code=201)
def generate_video(
    influencer_id: str,
    payload: VideoRequest,
    session: UserSession = Depends(_current_session),
) -> dict:
    influencer = _owned_influencer(session, influencer_id)
    require_quota(_plan_limits(session), "video_creation")
    return _content_store(session).generate_video(
        influencer_id, influencer.template_id, payload.title, payload.script
    )


@app.post("/influencers/{influencer_id}/content/delete")
def delete_content(
    influencer_id: str,
    payload: DeleteContentRequest,
    session: UserSession = Depends(_current_session),
) -> dict:
    _owned_influencer(session, influencer_id)
    _content_store(session).delete(influencer_id, payload.ids)
    return {"deleted": len(payload.ids)}


@app.post("/content/script")
def generate_script(payload: ScriptRequest, session: UserSession = Depends(_current_session)) -> dict:
    return {"script": _content_store(session).generate_script(payload.prompt, payload.action)}


@app.get("/influencers/{influencer_id}/webhooks")
def list_webhooks(influencer_id: str, session: UserSession = Depends(_current_session)) -> dict:
    _owned_influencer(session, influencer_id)
    return {"items": WebhookStore(session, get_backend()).fetch(influencer_id)}


@app.post("/influencers/{influencer_id}/webhooks", status_code=201)
def add_webhook(
    influencer_id: str,
    payload: WebhookCreate,
    session: UserSession = Depends(_current_session),
) -> dict:
    _owned_influencer(session, influencer_id)
    limits = _plan_limits(session)
    if not limits.automations_enabled:
        raise HTTPException(status_code=402, detail="automations_not_in_plan")
    return WebhookStore(session, get_backend()).add(influencer_id, payload.name, payload.url)


@app.delete("/influencers/{influencer_id}/webhooks/{webhook_id}")
def delete_webhook(
    influencer_id: str,
    webhook_id: str,
    session: UserSession = Depends(_current_session),
) -> dict:
    _owned_influencer(session, influencer_id)
    WebhookStore(session, get_backend()).delete(influencer_id, webhook_id)
    return {"ok": True}


@app.get("/plan-limits")
def plan_limits(session: UserSession = Depends(_current_session)) -> dict:
    resolver = PlanLimitResolver(get_backend().with_token(session.access_token))
    return resolver.resolve(session.email, session.user_id).as_dict()


@app.get("/plans/catalog")
def plans_catalog() -> dict:
    return {"tiers": [tier.as_dict() for tier in get_catalog()]}


@app.get("/plans/{tier}/checkout")
def plan_checkout(tier: str, session: UserSession = Depends(_current_session)) -> dict:
    return {"tier": tier, "url": checkout_url(tier, session.email)}


@app.get("/subscription")
def subscription(session: UserSession = Depends(_current_session)) -> dict:
    current = current_subscription(get_backend().with_token(session.access_token), session.email)
    return {"tier": current.tier, "subscription_id": current.subscription_id}


@app.post("/subscription/cancel")
def subscription_cancel(session: UserSession = Depends(_current_session)) -> dict:
    current = current_subscription(get_backend().with_token(session.access_token), session.email)
    result = cancel_subscription(session.email, current.subscription_id)
    return {"tier": result.tier, "subscription_id": result.subscription_id}


@app.get("/scheduling-link")
def scheduling_link(
    title: str = Query(default="Book a call"),
    description: str = Query(default=""),
) -> dict:
    return {"url": scheduling_url(title, description)}


@app.post("/assistant/chat")
def assistant_chat(payload: ChatRequest, session: UserSession = Depends(_current_session)) -> dict:
    conversation = Conversation.from_dicts([message.model_dump() for message in payload.messages])
    reply = ChatAssistant(session, get_backend(), llm_client=get_client()).send(conversation, payload.text)
    return {
        "message": reply.message,
        "navigation": reply.navigation.as_dict() if reply.navigation else None,
        "failed": reply.failed,
        "messages": conversation.as_payload(),
        "show_ticket_button": conversation.show_ticket_button,
    }


@app.post("/assistant/ticket")
def assistant_ticket(payload: TicketRequest, session: UserSession = Depends(_current_session)) -> dict:
    conversation = Conversation.from_dicts([message.model_dump() for message in payload.messages])
    reply = ChatAssistant(session, get_backend(), llm_client=get_client()).create_ticket(conversation)
    return {
        "message": reply.message,
        "failed": reply.failed,
        "messages": conversation.as_payload(),
        "show_ticket_button": conversation.show_ticket_button,
    }


@app.post("/avatars", status_code=201)
def generate_avatar(payload: AvatarGenerateRequest, session: UserSession = Depends(_current_session)) -> dict:
    require_quota(_plan_limits(session), "avatars")
    request = AvatarRequest(**payload.model_dump())
    image_url = AvatarClient().generate(request)
    public_url = store_avatar_image(get_backend(), session.user_id, image_url, request.output_format)
    return {"image_url": public_url}


@app.post("/planner/enqueue")
def planner_enqueue(payload: PlannerRequest, session: UserSession = Depends(_current_session)) -> dict:
    owned = {influencer.id for influencer in InfluencerStore(session, get_backend()).fetch()}
    unknown = sorted({row.influencer_id for row in payload.rows} - owned)
    if unknown:
        raise HTTPException(status_code=400, detail="unknown_influencer")
    rows = [PlannerRow(**row.model_dump()) for row in payload.rows]
    queued = enqueue_planner_rows(session.user_id, rows, scheduled_at=payload.scheduled_at)
    return {"queued": queued, "skipped": len(rows) - len(queued)}


@app.post("/webhooks/video")
async def video_webhook(request: Request, signature: str | None = Header(default=None)) -> dict:
    body = await request.body()
    secret = getenv("VIDEO_WEBHOOK_SECRET", "")
    if secret:
        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        if not signature or not hmac.compare_digest(signature, expected):
            raise HTTPException(status_code=401, detail="invalid_signature")
    try:
        event: Any = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid_json")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="invalid_event")
    updated = await run_in_threadpool(
        apply_webhook_event, get_backend(), event, getenv("CONTENT_TABLE", "content")
    )
    return {"updated": updated is not None}


@app.get("/admin/users")
def admin_users(_guard: None = Depends(_require_admin)) -> dict:
    return {"items": AdminService(get_backend()).list_users()}


@app.patch("/admin/users/{user_id}")
def admin_update_user(user_id: str, payload: dict[str, Any], _guard: None = Depends(_require_admin)) -> dict:
    return AdminService(get_backend()).update_user(user_id, payload)


@app.post("/admin/users/{user_id}/delete")
def admin_delete_user(user_id: str, _guard: None = Depends(_require_admin)) -> dict:
    if not AdminService(get_backend()).delete_user(user_id):
        raise HTTPException(status_code=404, detail="user_not_found")
    return {"ok": True}


@app.get("/admin/plans")
def admin_plans(_guard: None = Depends(_require_admin)) -> dict:
    return {"items": AdminService(get_backend()).list_plans()}


@app.patch("/admin/plans/{plan_id}")
def admin_update_plan(plan_id: int, payload: dict[str, Any], _guard: None = Depends(_require_admin)) -> dict:
    return AdminService(get_backend()).update_plan(plan_id, payload)


@app.get("/admin/usage")
def admin_usage(_guard: None = Depends(_require_admin)) -> dict:
    return {"items": AdminService(get_backend()).list_usage()}


@app.patch("/admin/usage/{user_id}")
def admin_update_usage(user_id: str, payload: dict[str, Any], _guard: None = Depends(_require_admin)) -> dict:
    return AdminService(get_backend()).update_usage(user_id, payload)


@app.get("/admin/influencers")
def admin_influencers(_guard: None = Depends(_require_admin)) -> dict:
    return {"items": AdminService(get_backend()).list_influencers()}


@app.post("/admin/influencers", status_code=201)
def admin_create_influencer(payload: AdminInfluencerCreate, _guard: None = Depends(_require_admin)) -> dict:
    return AdminService(get_backend()).create_influencer_for(payload.user_id, payload.name, payload.template_id)


@app.get("/admin/tickets")
def admin_tickets(_guard: None = Depends(_require_admin)) -> dict:
    return {"items": TicketService(get_backend()).list_tickets()}


@app.post("/admin/tickets/{ticket_id}/status")
def admin_ticket_status(
    ticket_id: str,
    payload: TicketStatusRequest,
    _guard: None = Depends(_require_admin),
) -> dict:
    return TicketService(get_backend()).update_status(ticket_id, payload.status)


@app.get("/llm/metrics")
def llm_metrics(_guard: None = Depends(_require_admin)) -> dict:
    return get_client().get_metrics_snapshot()
