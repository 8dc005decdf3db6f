from datetime import datetime
from functools import wraps
from typing import Optional

import requests
from flask import Flask, redirect, render_template_string, request, session, url_for

from uniawards.config import Config
from uniawards.logger import get_logger, set_level
from uniawards.templates import (
    ADMIN_ANALYTICS_TEMPLATE,
    ADMIN_NOMINATIONS_TEMPLATE,
    ADMIN_POLLS_TEMPLATE,
    ADMIN_SETTINGS_TEMPLATE,
    ADMIN_USERS_TEMPLATE,
    ADMIN_VOTING_TEMPLATE,
    DASHBOARD_TEMPLATE,
    ERROR_TEMPLATE,
    LEADERBOARD_TEMPLATE,
    LOGIN_TEMPLATE,
    NOMINATE_TEMPLATE,
    PUBLIC_LEADERBOARD_TEMPLATE,
    VOTE_TEMPLATE,
)

log = get_logger("web")

POLL_STATUSES = [
    ("NOMINATION_OPEN", "Nomination Open"),
    ("NOMINATION_CLOSED", "Nomination Closed"),
    ("VOTING_OPEN", "Voting Open"),
    ("VOTING_CLOSED", "Voting Closed"),
]
ROLES = ["admin", "voter", "viewer"]


class ApiError(Exception):
    def __init__(self, status: int, detail: str, code: Optional[str] = None):
        super().__init__(detail)
        self.status = status
        self.detail = detail
        self.code = code


class ApiClient:
    """Thin wrapper over the backend API using requests"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = requests.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            log.error("API request failed: %s %s: %s", method, path, e)
            raise ApiError(502, f"API request failed: {e}")

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            detail = body.get("detail") or body.get("message") or response.reason or "Request failed"
            if not isinstance(detail, str):
                # FastAPI request validation errors come back as a list
                detail = "Please check the submitted values."
            raise ApiError(response.status_code, detail, body.get("code"))
        return response.json()

    def get(self, path: str, **kwargs):
        return self._request("GET", path, **kwargs)

    def post(self, path: str, **kwargs):
        return self._request("POST", path, **kwargs)

    def patch(self, path: str, **kwargs):
        return self._request("PATCH", path, **kwargs)

    def put(self, path: str, **kwargs):
        return self._request("PUT", path, **kwargs)


def _deadline(value: str) -> Optional[str]:
    """datetime-local input → ISO string the API accepts (UTC)"""
    value = (value or "").strip()
    if not value:
        return None
    return datetime.fromisoformat(value).isoformat()


def create_app(config: Optional[Config] = None, api_factory=None) -> Flask:
    config = config or Config.from_env()
    set_level(config.log_level)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key
    app.config["UNIAWARDS"] = config

    if api_factory is None:
        def api_factory(token=None):
            return ApiClient(config.backend_api_url, token)

    def api() -> ApiClient:
        return api_factory(session.get("api_token"))

    def current_account():
        return session.get("account")

    def render(template: str, **context):
        context.setdefault("account", current_account())
        context.setdefault("message", request.args.get("message"))
        context.setdefault("is_error", bool(request.args.get("error")))
        if context["message"] is None and request.args.get("error"):
            context["message"] = request.args.get("error")
            context["is_error"] = True
        return render_template_string(template, **context)

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "api_token" not in session:
                return redirect(url_for("login"))
            return view(*args, **kwargs)
        return wrapper

    def admin_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "api_token" not in session:
                return redirect(url_for("login"))
            if not (current_account() or {}).get("can_moderate"):
                return redirect(url_for("dashboard"))
            return view(*args, **kwargs)
        return wrapper

    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        if e.status == 401:
            session.clear()
            return redirect(url_for("login", error=e.detail))
        if e.status in (403, 404):
            return redirect(url_for("dashboard", error=e.detail))
        return render(ERROR_TEMPLATE, message=e.detail, is_error=True), e.status

    @app.route("/")
    def index():
        # Sign-in links land here when the page server origin is used directly
        if request.args.get("code"):
            return redirect(url_for("auth_callback", **request.args))
        if "api_token" in session:
            return redirect(url_for("dashboard"))
        return redirect(url_for("login"))

    # ---------------- Sign-in ----------------
    def _start_session(result: dict):
        session["api_token"] = result["access_token"]
        session["account"] = result["account"]
        session.pop("pending_email", None)
        log.info("Successful login: %s", result["account"]["email"])

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if "api_token" in session:
            return redirect(url_for("dashboard"))

        email = session.get("pending_email")
        if request.method == "GET":
            return render(LOGIN_TEMPLATE, step="code" if email else "email", email=email)

        action = request.form.get("action", "send")
        if action == "back":
            session.pop("pending_email", None)
            return render(LOGIN_TEMPLATE, step="email", email=None)

        if action == "send":
            email = request.form.get("email", "").strip().lower()
            if not email:
                return render(LOGIN_TEMPLATE, step="email", email=None,
                              message="Please enter your email address", is_error=True)

        if action in ("send", "resend"):
            if not email:
                return render(LOGIN_TEMPLATE, step="email", email=None)
            client = api_factory()
            gate = client.post("/api/check-email", json={"email": email})
            if not gate.get("allowed", True):
                return render(LOGIN_TEMPLATE, step="email", email=email,
                              message=gate.get("message"), is_error=True)
            try:
                client.post("/api/auth/otp", json={"email": email})
            except ApiError as e:
                if e.status >= 500:
                    raise
                return render(LOGIN_TEMPLATE, step="email", email=email, message=e.detail, is_error=True)
            session["pending_email"] = email
            return render(LOGIN_TEMPLATE, step="code", email=email,
                          message="Check your email for the 6-digit code.")

        # verify
        code = request.form.get("code", "").strip()
        if not email:
            return render(LOGIN_TEMPLATE, step="email", email=None)
        if not code:
            return render(LOGIN_TEMPLATE, step="code", email=email,
                          message="Please enter the 6-digit code", is_error=True)
        try:
            result = api_factory().post("/api/auth/callback", json={"email": email, "code": code})
        except ApiError as e:
            if e.status >= 500:
                raise
            return render(LOGIN_TEMPLATE, step="code", email=email, message=e.detail, is_error=True)
        _start_session(result)
        return redirect(url_for("dashboard"))

    @app.route("/auth/callback")
    def auth_callback():
        email = (request.args.get("email") or session.get("pending_email") or "").strip().lower()
        code = request.args.get("code", "").strip()
        if not email or not code:
            return redirect(url_for("login", error="Invalid sign-in link"))
        try:
            result = api_factory().post("/api/auth/callback", json={"email": email, "code": code})
        except ApiError as e:
            return redirect(url_for("login", error=e.detail))
        _start_session(result)
        return redirect(url_for("dashboard"))

    @app.route("/logout")
    def logout():
        session.clear()
        return redirect(url_for("login"))

    # ---------------- Voter pages ----------------
    @app.route("/dashboard")
    @login_required
    def dashboard():
        client = api()
        # Refresh the cached account so role changes show up without re-login
        session["account"] = client.get("/api/me")
        return render(DASHBOARD_TEMPLATE, polls=client.get("/api/polls"))

    @app.route("/nominate/<poll_id>", methods=["GET", "POST"])
    @login_required
    def nominate(poll_id):
        client = api()
        poll = client.get(f"/api/polls/{poll_id}")
        if poll["status"] != "NOMINATION_OPEN":
            return redirect(url_for("dashboard"))

        if request.method == "GET":
            return render(NOMINATE_TEMPLATE, poll=poll, success=False, nominee_name="")

        nominee_name = request.form.get("nominee_name", "").strip()
        if not nominee_name:
            return render(NOMINATE_TEMPLATE, poll=poll, success=False, nominee_name="",
                          message="Please enter a nominee name", is_error=True)

        files = None
        image = request.files.get("image")
        if image is not None and image.filename:
            files = {"image": (image.filename, image.read(), image.mimetype or "application/octet-stream")}
        try:
            client.post(f"/api/polls/{poll_id}/nominations", data={"nominee_name": nominee_name}, files=files)
        except ApiError as e:
            if e.code == "poll_not_open":
                return redirect(url_for("dashboard"))
            if e.status >= 500 or e.status == 401:
                raise
            return render(NOMINATE_TEMPLATE, poll=poll, success=False, nominee_name=nominee_name,
                          message=e.detail, is_error=True)
        return render(NOMINATE_TEMPLATE, poll=poll, success=True, nominee_name="")

    @app.route("/vote/<poll_id>", methods=["GET", "POST"])
    @login_required
    def vote(poll_id):
        client = api()
        poll = client.get(f"/api/polls/{poll_id}")
        if poll["status"] != "VOTING_OPEN":
            return redirect(url_for("dashboard"))

        message, is_error, just_voted = None, False, False
        if request.method == "POST":
            nomination_id = request.form.get("nomination_id", "")
            try:
                client.post(f"/api/polls/{poll_id}/votes", json={"nomination_id": nomination_id})
                message, just_voted = "Vote submitted successfully", True
            except ApiError as e:
                if e.status >= 500 or e.status == 401:
                    raise
                if e.code == "poll_not_open":
                    return redirect(url_for("dashboard", error=e.detail))
                message, is_error = e.detail, True

        listing = client.get(f"/api/polls/{poll_id}/nominations")
        return render(
            VOTE_TEMPLATE,
            poll=listing["poll"],
            nominations=listing["nominations"],
            has_voted=listing["has_voted"],
            voted_for=listing["voted_for"],
            just_voted=just_voted,
            message=message,
            is_error=is_error,
        )

    @app.route("/leaderboard")
    def public_leaderboard():
        boards = api_factory().get("/api/leaderboard")
        return render(PUBLIC_LEADERBOARD_TEMPLATE, boards=boards)

    @app.route("/leaderboard/<poll_id>")
    @login_required
    def poll_leaderboard(poll_id):
        board = api().get(f"/api/polls/{poll_id}/leaderboard")
        return render(
            LEADERBOARD_TEMPLATE,
            board=board,
            vote_ids=[],
            live_url=f"{config.backend_api_url}/api/polls/{poll_id}/live",
        )

    # ---------------- Admin ----------------
    @app.route("/admin")
    @admin_required
    def admin_dashboard():
        return redirect(url_for("admin_polls"))

    @app.route("/admin/polls", methods=["GET", "POST"])
    @admin_required
    def admin_polls():
        client = api()
        message, is_error = None, False
        if request.method == "POST":
            payload = {
                "title": request.form.get("title", "").strip(),
                "description": request.form.get("description", "").strip() or None,
                "status": request.form.get("status", "NOMINATION_OPEN"),
            }
            try:
                payload["ends_at"] = _deadline(request.form.get("ends_at", ""))
            except ValueError:
                payload = None
                message, is_error = "Invalid voting deadline", True

            if payload is not None and not payload["title"]:
                message, is_error = "Please enter a poll title", True
            elif payload is not None:
                try:
                    if request.form.get("action") == "update":
                        client.patch(f"/api/polls/{request.form.get('poll_id', '')}", json=payload)
                        message = "Poll updated"
                    else:
                        client.post("/api/polls", json=payload)
                        message = "Poll created"
                except ApiError as e:
                    if e.status >= 500 or e.status in (401, 403):
                        raise
                    message, is_error = e.detail, True

        return render(
            ADMIN_POLLS_TEMPLATE,
            polls=client.get("/api/polls"),
            statuses=POLL_STATUSES,
            message=message,
            is_error=is_error,
        )

    @app.route("/admin/voting", methods=["GET", "POST"])
    @admin_required
    def admin_voting():
        client = api()
        message = None
        if request.method == "POST":
            poll = client.patch(
                f"/api/polls/{request.form.get('poll_id', '')}",
                json={"status": request.form.get("status", "")},
            )
            message = f"{poll['title']}: {poll['status_label']}"
        return render(ADMIN_VOTING_TEMPLATE, polls=client.get("/api/polls"), message=message)

    @app.route("/admin/nominations", methods=["GET", "POST"])
    @admin_required
    def admin_nominations():
        client = api()
        message = None
        if request.method == "POST":
            approved = request.form.get("approved") == "true"
            client.patch(
                f"/api/admin/nominations/{request.form.get('nomination_id', '')}",
                json={"approved": approved},
            )
            message = "Nomination approved" if approved else "Nomination rejected"
        return render(ADMIN_NOMINATIONS_TEMPLATE, nominations=client.get("/api/admin/nominations"), message=message)

    @app.route("/admin/users", methods=["GET", "POST"])
    @admin_required
    def admin_users():
        client = api()
        search = request.args.get("search", "").strip()
        message = None
        if request.method == "POST":
            user = client.patch(
                f"/api/admin/users/{request.form.get('account_id', '')}",
                json={"role": request.form.get("role", "")},
            )
            message = f"{user['email']} is now {user['role']}"
        params = {"search": search} if search else None
        return render(
            ADMIN_USERS_TEMPLATE,
            users=client.get("/api/admin/users", params=params),
            roles=ROLES,
            search=search,
            message=message,
        )

    @app.route("/admin/settings", methods=["GET", "POST"])
    @admin_required
    def admin_settings():
        client = api()
        message, is_error, test_email = None, False, ""
        if request.method == "POST":
            settings = {
                "enabled": request.form.get("enabled") == "true",
                "pattern": request.form.get("pattern", "").strip() or ".*",
                "message": request.form.get("message", "").strip(),
            }
            test_email = request.form.get("test_email", "").strip()
            try:
                if request.form.get("action") == "test":
                    if not test_email:
                        message, is_error = "Please enter an email to test", True
                    else:
                        result = client.post(
                            "/api/admin/settings/test",
                            json={"pattern": settings["pattern"], "email": test_email},
                        )
                        verdict = "would be allowed" if result["allowed"] else "would be rejected"
                        message = f"{test_email} {verdict}"
                    return render(ADMIN_SETTINGS_TEMPLATE, settings=settings, test_email=test_email,
                                  message=message, is_error=is_error)
                client.put("/api/admin/settings", json=settings)
                message = "Settings saved"
            except ApiError as e:
                if e.status >= 500 or e.status in (401, 403):
                    raise
                return render(ADMIN_SETTINGS_TEMPLATE, settings=settings, test_email=test_email,
                              message=e.detail, is_error=True)

        return render(
            ADMIN_SETTINGS_TEMPLATE,
            settings=client.get("/api/admin/settings"),
            test_email=test_email,
            message=message,
            is_error=is_error,
        )

    @app.route("/admin/analytics")
    @admin_required
    def admin_analytics():
        return render(ADMIN_ANALYTICS_TEMPLATE, stats=api().get("/api/admin/analytics"))

    log.info("Page server ready (api=%s)", config.backend_api_url)
    return app


if __name__ == "__main__":
    print("=" * 60)
    print("UNIAWARDS - WEB")
    print("=" * 60)
    config = Config.from_env()
    print(f"Backend API: {config.backend_api_url}")
    print(f"Open {config.web_base_url} in your browser")
    create_app(config).run(host="localhost", port=3000, debug=True)
