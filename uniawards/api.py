import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from uniawards import __version__
from uniawards import accounts, auth, email_gate, ledger, nominations, polls, tally
from uniawards.accounts import RolePolicy, can_moderate, capabilities
from uniawards.blobs import ImageStore
from uniawards.config import Config, require
from uniawards.database import init_db, make_engine, make_session_factory, utcnow
from uniawards.errors import AuthError, AwardsError, Forbidden
from uniawards.feed import VoteFeed
from uniawards.logger import get_logger, set_level
from uniawards.models import Account, Nomination, Poll
from uniawards.schemas import (
    AllowlistSettings,
    ApprovalUpdate,
    CodeExchange,
    CodeRequest,
    EmailCheck,
    PatternTest,
    PollCreate,
    PollUpdate,
    RoleUpdate,
    VoteCast,
    iso,
)

log = get_logger("api")

# Security
security = HTTPBearer(auto_error=False)

KEEPALIVE_SECONDS = 15


# Serializers
def account_to_dict(account: Account, allow_admin_votes: bool = False) -> dict:
    return {
        "id": account.id,
        "email": account.email,
        "role": account.role,
        "created_at": iso(account.created_at),
        **capabilities(account, allow_admin_votes),
    }


def poll_to_dict(poll: Poll) -> dict:
    return {
        "id": poll.id,
        "title": poll.title,
        "description": poll.description,
        "status": poll.status,
        "status_label": polls.POLL_STATUS_LABELS.get(poll.status, poll.status),
        "ends_at": iso(poll.ends_at),
        "created_at": iso(poll.created_at),
    }


def nomination_to_dict(nomination: Nomination, submitter_email: Optional[str] = None) -> dict:
    doc = {
        "id": nomination.id,
        "poll_id": nomination.poll_id,
        "nominee_name": nomination.nominee_name,
        "image_url": nomination.image_url,
        "approved": nomination.approved,
        "created_at": iso(nomination.created_at),
    }
    if submitter_email is not None:
        doc["nominated_by"] = submitter_email
    return doc


def sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def live_events(feed, session_factory, clock, poll_id, is_disconnected, keepalive=KEEPALIVE_SECONDS):
    """
    Server-sent event frames for one poll's live results.

    The first frame is a ``snapshot`` of the leaderboard. After that each new
    vote is applied to a ``LiveTally`` seeded from the snapshot and a ``vote``
    frame carries the updated counts. Repeated or already counted votes
    produce no frame.
    """
    async with feed.subscribe(poll_id) as subscription:
        # Subscribed before the snapshot so no vote falls in between
        with session_factory() as db:
            board = tally.leaderboard(db, poll_id)
            snapshot = board.to_dict(clock())
        snapshot["vote_ids"] = board.vote_ids
        live = tally.LiveTally(poll_id, board.nominations, seen_vote_ids=board.vote_ids)
        yield sse("snapshot", snapshot)

        while not await is_disconnected():
            event = await subscription.get(timeout=keepalive)
            if event is None:
                yield ": keep-alive\n\n"
                continue
            if not live.apply(event):
                continue
            total = live.total
            yield sse("vote", {
                "vote": event,
                "total_votes": total,
                "nominations": [n.to_dict(total) for n in live.ranked()],
            })


def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or Config.from_env()
    set_level(config.log_level)

    app = FastAPI(title="UniAwards API", version=__version__)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = make_engine(config.database_url)
    init_db(engine)
    SessionLocal = make_session_factory(engine)
    with SessionLocal() as db:
        email_gate.seed_default_settings(db)

    image_store = ImageStore(config.upload_dir, config.public_base_url)
    app.mount("/uploads", StaticFiles(directory=str(Path(config.upload_dir).resolve())), name="uploads")

    app.state.config = config
    app.state.engine = engine
    app.state.SessionLocal = SessionLocal
    app.state.feed = VoteFeed()
    app.state.images = image_store
    app.state.mailer = auth.Mailer(callback_url=f"{config.web_base_url}/auth/callback")
    app.state.clock = utcnow
    app.state.role_policy = RolePolicy.from_config(config)

    @app.exception_handler(AwardsError)
    async def awards_error_handler(request: Request, exc: AwardsError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

    # Dependencies
    def get_db():
        db = app.state.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def get_now() -> datetime:
        return app.state.clock()

    def get_current_account(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        db: Session = Depends(get_db),
    ) -> Account:
        if credentials is None:
            raise AuthError("Not authenticated")
        claims = auth.decode_session_token(credentials.credentials, config.jwt_secret)
        account = accounts.get_account(db, claims.get("sub", ""))
        if account is None:
            raise AuthError("Account not found")
        return account

    def require_admin(account: Account = Depends(get_current_account)) -> Account:
        if not can_moderate(account):
            raise Forbidden("Admin access required")
        return account

    @app.get("/")
    async def root():
        return {"message": "UniAwards API", "version": __version__}

    # Sign-in
    @app.post("/api/check-email")
    async def check_email(payload: EmailCheck, db: Session = Depends(get_db)):
        """Allowlist check run before a sign-in code is sent"""
        if not payload.email or not payload.email.strip():
            return JSONResponse(status_code=400, content={"allowed": False, "message": "Email is required"})
        return email_gate.check_email(db, payload.email).to_dict()

    @app.post("/api/auth/otp")
    async def send_code(payload: CodeRequest, db: Session = Depends(get_db)):
        result = email_gate.check_email(db, payload.email)
        if not result.allowed:
            return JSONResponse(status_code=403, content=result.to_dict())
        auth.request_code(db, payload.email, app.state.mailer)
        return {"sent": True, "message": "Check your email for the 6-digit code."}

    @app.post("/api/auth/callback")
    async def auth_callback(payload: CodeExchange, db: Session = Depends(get_db)):
        """Exchange a one-time code for a session token"""
        identity = auth.verify_code(db, payload.email, payload.code)
        account = accounts.ensure_account(db, identity.id, identity.email, app.state.role_policy)
        token = auth.create_session_token(account.id, account.email, config.jwt_secret, config.session_hours)
        log.info("Successful login: %s", account.email)
        return {
            "access_token": token,
            "token_type": "bearer",
            "account": account_to_dict(account, config.allow_admin_votes),
        }

    @app.get("/api/me")
    async def me(account: Account = Depends(get_current_account)):
        return account_to_dict(account, config.allow_admin_votes)

    # Polls
    @app.get("/api/polls")
    async def list_polls(
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        account: Account = Depends(get_current_account),
    ):
        """Dashboard listing; closes expired votes first"""
        return [poll_to_dict(p) for p in polls.list_polls(db, now)]

    @app.get("/api/polls/{poll_id}")
    async def get_poll(poll_id: str, db: Session = Depends(get_db), account: Account = Depends(get_current_account)):
        return poll_to_dict(polls.get_poll(db, poll_id))

    @app.post("/api/polls", status_code=status.HTTP_201_CREATED)
    async def create_poll(payload: PollCreate, db: Session = Depends(get_db), admin: Account = Depends(require_admin)):
        poll = polls.create_poll(
            db,
            admin,
            title=payload.title,
            description=payload.description,
            status=payload.status.value,
            ends_at=payload.ends_at,
        )
        return poll_to_dict(poll)

    @app.patch("/api/polls/{poll_id}")
    async def update_poll(
        poll_id: str,
        payload: PollUpdate,
        db: Session = Depends(get_db),
        admin: Account = Depends(require_admin),
    ):
        changes = payload.model_dump(exclude_unset=True)
        if "status" in changes and changes["status"] is not None:
            changes["status"] = changes["status"].value
        if changes.get("title") is None:
            changes.pop("title", None)
        poll = polls.update_poll(db, poll_id, admin, **changes)
        return poll_to_dict(poll)

    # Nominations
    @app.post("/api/polls/{poll_id}/nominations", status_code=status.HTTP_201_CREATED)
    async def submit_nomination(
        poll_id: str,
        nominee_name: str = Form(""),
        image: Optional[UploadFile] = File(None),
        db: Session = Depends(get_db),
        account: Account = Depends(get_current_account),
    ):
        name = nominations.clean_nominee_name(nominee_name)
        nominations.check_open_for_nominations(db, poll_id)

        image_url = None
        if image is not None and image.filename:
            image_url = app.state.images.save(poll_id, image.filename, await image.read())

        try:
            nomination = nominations.submit_nomination(db, poll_id, account, name, image_url=image_url)
        except Exception:
            # No row points at the image, so it must not stay on disk
            if image_url:
                app.state.images.discard(image_url)
            raise
        return {
            "message": "Your nomination is pending admin approval.",
            "nomination": nomination_to_dict(nomination),
        }

    @app.get("/api/polls/{poll_id}/nominations")
    async def list_nominations(
        poll_id: str,
        db: Session = Depends(get_db),
        account: Account = Depends(get_current_account),
    ):
        """Approved nominations only, in submission order"""
        poll = polls.get_poll(db, poll_id)
        vote = ledger.get_vote(db, poll_id, account.id)
        return {
            "poll": poll_to_dict(poll),
            "nominations": [nomination_to_dict(n) for n in nominations.approved_nominations(db, poll_id)],
            "has_voted": vote is not None,
            "voted_for": vote.nomination_id if vote else None,
        }

    # Votes
    @app.post("/api/polls/{poll_id}/votes", status_code=status.HTTP_201_CREATED)
    async def cast_vote(
        poll_id: str,
        payload: VoteCast,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        account: Account = Depends(get_current_account),
    ):
        vote = ledger.cast_vote(
            db,
            poll_id,
            payload.nomination_id,
            account,
            now,
            allow_admin_votes=config.allow_admin_votes,
        )
        app.state.feed.publish_vote(vote)
        return {
            "message": "Vote submitted successfully",
            "vote": {
                "id": vote.id,
                "poll_id": vote.poll_id,
                "nomination_id": vote.nomination_id,
                "created_at": iso(vote.created_at),
            },
        }

    # Results
    @app.get("/api/polls/{poll_id}/leaderboard")
    async def poll_leaderboard(
        poll_id: str,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        account: Account = Depends(get_current_account),
    ):
        return tally.leaderboard(db, poll_id).to_dict(now)

    @app.get("/api/leaderboard")
    async def public_leaderboard(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
        """Results for every poll; no sign-in needed"""
        return [board.to_dict(now) for board in tally.public_leaderboard(db)]

    @app.get("/api/polls/{poll_id}/live")
    async def live_results(poll_id: str, request: Request):
        """Server-sent events: a snapshot, then one event per new vote"""
        with app.state.SessionLocal() as db:
            polls.get_poll(db, poll_id)

        stream = live_events(
            app.state.feed, app.state.SessionLocal, app.state.clock, poll_id, request.is_disconnected
        )
        return StreamingResponse(
            stream,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # Admin
    @app.get("/api/admin/nominations")
    async def moderation_queue(db: Session = Depends(get_db), admin: Account = Depends(require_admin)):
        return [nomination_to_dict(n, email or "Unknown") for n, email in nominations.moderation_queue(db)]

    @app.patch("/api/admin/nominations/{nomination_id}")
    async def moderate_nomination(
        nomination_id: str,
        payload: ApprovalUpdate,
        db: Session = Depends(get_db),
        admin: Account = Depends(require_admin),
    ):
        nomination = nominations.set_approval(db, nomination_id, payload.approved, admin)
        return nomination_to_dict(nomination)

    @app.get("/api/admin/users")
    async def list_users(
        search: Optional[str] = None,
        db: Session = Depends(get_db),
        admin: Account = Depends(require_admin),
    ):
        return [account_to_dict(a, config.allow_admin_votes) for a in accounts.list_accounts(db, search)]

    @app.patch("/api/admin/users/{account_id}")
    async def change_role(
        account_id: str,
        payload: RoleUpdate,
        db: Session = Depends(get_db),
        admin: Account = Depends(require_admin),
    ):
        account = accounts.set_role(db, account_id, payload.role.value)
        return account_to_dict(account, config.allow_admin_votes)

    @app.get("/api/admin/settings")
    async def get_settings(db: Session = Depends(get_db), admin: Account = Depends(require_admin)):
        allowlist = email_gate.load_allowlist(db)
        if allowlist is None:
            raise HTTPException(status_code=503, detail="Failed to load settings")
        return {"enabled": allowlist.enabled, "pattern": allowlist.pattern, "message": allowlist.message}

    @app.put("/api/admin/settings")
    async def save_settings(
        payload: AllowlistSettings,
        db: Session = Depends(get_db),
        admin: Account = Depends(require_admin),
    ):
        saved = email_gate.save_allowlist(
            db, email_gate.AllowlistConfig(enabled=payload.enabled, pattern=payload.pattern, message=payload.message)
        )
        return {"enabled": saved.enabled, "pattern": saved.pattern, "message": saved.message}

    @app.post("/api/admin/settings/test")
    async def test_settings_pattern(payload: PatternTest, admin: Account = Depends(require_admin)):
        """Try an email against a pattern before saving it"""
        return {"email": payload.email, "allowed": email_gate.match_pattern(payload.pattern, payload.email)}

    @app.get("/api/admin/analytics")
    async def get_analytics(db: Session = Depends(get_db), admin: Account = Depends(require_admin)):
        return tally.analytics(db)

    log.info("API ready (database=%s)", engine.url.render_as_string(hide_password=True))
    return app


if __name__ == "__main__":
    import uvicorn

    # Tokens must stay valid across restarts
    require("JWT_SECRET")
    print("=" * 60)
    print("UNIAWARDS - API")
    print("=" * 60)
    uvicorn.run("uniawards.api:create_app", factory=True, host="0.0.0.0", port=8000)
