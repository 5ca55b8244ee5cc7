# linkpreview/app.py

import os

from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import select
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .db import SessionLocal, User, init_db
from .errors import PreviewError
from .logger import configure_logging, log
from .models import PreviewMetadata
from .preview import build_preview
from .security import get_current_user

# ------------------------------------------------------------------------------
# FastAPI app
# ------------------------------------------------------------------------------
app = FastAPI(title=config.APP_TITLE)
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY, same_site="lax", https_only=False)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.BASE_URL, "http://localhost:8000", "http://127.0.0.1:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    configure_logging()
    init_db()
    log.info("startup: limits timeout=%ss redirects=%d bytes=%d",
             config.PREVIEW_TIMEOUT_SEC, config.PREVIEW_MAX_REDIRECTS, config.PREVIEW_MAX_BYTES)

# ------------------------------------------------------------------------------
# OAuth (Google only)
# ------------------------------------------------------------------------------
oauth = OAuth()
oauth.register(
    name="google",
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_id=config.GOOGLE_CLIENT_ID,
    client_secret=config.GOOGLE_CLIENT_SECRET,
    client_kwargs={"scope": "openid email profile"},
)


@app.get("/auth/login")
async def auth_login(request: Request):
    redirect_uri = os.getenv("OAUTH_REDIRECT_URI") or str(request.url_for("auth_callback"))
    return await oauth.google.authorize_redirect(request, redirect_uri)


@app.get("/auth/callback")
async def auth_callback(request: Request):
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        log.warning("auth: token exchange failed: %s %s", e.error, e.description)
        raise HTTPException(401, "OAuth token exchange failed")

    userinfo = (token or {}).get("userinfo") or {}
    email = userinfo.get("email")
    if not email:
        raise HTTPException(401, "Google account has no email")

    s = SessionLocal()
    try:
        user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not user:
            user = User(email=email, name=userinfo.get("name") or "")
            s.add(user)
            s.commit()
            s.refresh(user)
        request.session["user_id"] = user.id
    finally:
        s.close()

    return RedirectResponse("/", status_code=302)


@app.post("/auth/logout")
async def auth_logout(request: Request):
    request.session.clear()
    return JSONResponse({"ok": True})

# ------------------------------------------------------------------------------
# API
# ------------------------------------------------------------------------------
def preview_options() -> dict:
    """Extra keyword arguments for build_preview (resolver, transport, limits)."""
    return {}


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/me")
async def api_me(user: User = Depends(get_current_user)):
    return {"user": {"id": user.id, "email": user.email, "name": user.name}}


@app.get("/api/link/preview", response_model=PreviewMetadata)
async def link_preview(
    url: str = "",
    user: User = Depends(get_current_user),
    options: dict = Depends(preview_options),
):
    """
    Open Graph style metadata for *url*. Any safety or transport failure is
    answered with the same 400 so callers cannot map internal hosts.
    """
    raw = (url or "").strip()
    if not raw:
        raise HTTPException(400, "url is required")
    try:
        return await build_preview(raw, **options)
    except PreviewError:
        raise HTTPException(400, "failed to fetch metadata")
