# ---------------- HTML templates ----------------
HEAD = """
<!DOCTYPE html>
<html>
<head>
    <title>{{ title or "UniAwards" }}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body { font-family: Arial, sans-serif; max-width: 960px; margin: 0 auto; padding: 20px; color: #111; }
        nav { display: flex; gap: 1rem; align-items: center; border-bottom: 1px solid #ddd; padding-bottom: 10px; margin-bottom: 20px; }
        nav .spacer { flex: 1; }
        .card { border: 1px solid #ddd; border-radius: 8px; padding: 15px; margin: 10px 0; }
        .badge { display: inline-block; padding: 2px 8px; border-radius: 10px; font-size: 12px; background: #eee; }
        .error { color: #d93025; background-color: #fce8e6; border: 1px solid #d93025; border-radius: 4px; padding: 10px; margin: 10px 0; }
        .notice { background-color: #e8f0fe; border: 1px solid #4285f4; border-radius: 4px; padding: 10px; margin: 10px 0; }
        .btn { padding: 8px 16px; background: #4285f4; color: white; border: none; border-radius: 4px; cursor: pointer; text-decoration: none; }
        .btn.danger { background: #d93025; }
        .btn[disabled] { background: #aaa; cursor: default; }
        .bar { height: 8px; background: #4285f4; border-radius: 4px; }
        table { width: 100%; border-collapse: collapse; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
        img.nominee { width: 64px; height: 64px; object-fit: cover; border-radius: 50%; }
    </style>
</head>
<body>
<nav>
    <strong><a href="{{ url_for('dashboard') if account else url_for('public_leaderboard') }}">🏆 UniAwards</a></strong>
    <a href="{{ url_for('public_leaderboard') }}">Leaderboard</a>
    {% if account and account.can_moderate %}<a href="{{ url_for('admin_polls') }}">Admin</a>{% endif %}
    <span class="spacer"></span>
    {% if account %}
        <span>{{ account.email }} <span class="badge">{{ account.role }}</span></span>
        <a href="{{ url_for('logout') }}">Sign out</a>
    {% else %}
        <a href="{{ url_for('login') }}">Login</a>
    {% endif %}
</nav>
{% if message %}<div class="{{ 'error' if is_error else 'notice' }}">{{ message }}</div>{% endif %}
"""

ADMIN_NAV = """
<p>
    <a href="{{ url_for('admin_polls') }}">Polls</a> |
    <a href="{{ url_for('admin_voting') }}">Voting</a> |
    <a href="{{ url_for('admin_nominations') }}">Nominations</a> |
    <a href="{{ url_for('admin_users') }}">Users</a> |
    <a href="{{ url_for('admin_settings') }}">Settings</a> |
    <a href="{{ url_for('admin_analytics') }}">Analytics</a>
</p>
"""

FOOT = """
</body>
</html>
"""

LOGIN_TEMPLATE = HEAD + """
<h1>University Yearbook Awards Platform</h1>
{% if step == "email" %}
<p>Sign in with your email to nominate, vote, and celebrate.</p>
<form method="POST">
    <input type="hidden" name="action" value="send">
    <input type="email" name="email" placeholder="you@university.edu" value="{{ email or '' }}" autocomplete="email">
    <button type="submit" class="btn">Send verification code</button>
</form>
{% else %}
<p>Enter the 6-digit code sent to <strong>{{ email }}</strong></p>
<form method="POST">
    <input type="hidden" name="action" value="verify">
    <input type="text" name="code" placeholder="123456" maxlength="6" autocomplete="one-time-code">
    <button type="submit" class="btn">Verify and sign in</button>
</form>
<form method="POST" style="margin-top: 10px">
    <input type="hidden" name="action" value="resend">
    <button type="submit" class="btn">Resend code</button>
</form>
<form method="POST" style="margin-top: 10px">
    <input type="hidden" name="action" value="back">
    <button type="submit" class="btn">Use a different email</button>
</form>
{% endif %}
""" + FOOT

DASHBOARD_TEMPLATE = HEAD + """
<h1>Awards Dashboard</h1>
{% if not polls %}
<p>No polls yet. Check back soon.</p>
{% endif %}
{% for poll in polls %}
<div class="card">
    <h3>{{ poll.title }} <span class="badge">{{ poll.status_label }}</span></h3>
    {% if poll.description %}<p>{{ poll.description }}</p>{% endif %}
    {% if poll.status == "NOMINATION_OPEN" and account.can_nominate %}
        <a class="btn" href="{{ url_for('nominate', poll_id=poll.id) }}">Nominate</a>
    {% elif poll.status == "VOTING_OPEN" %}
        <a class="btn" href="{{ url_for('vote', poll_id=poll.id) }}">Vote</a>
        <a href="{{ url_for('poll_leaderboard', poll_id=poll.id) }}">Live results</a>
    {% elif poll.status == "VOTING_CLOSED" %}
        <a class="btn" href="{{ url_for('poll_leaderboard', poll_id=poll.id) }}">Results</a>
    {% endif %}
</div>
{% endfor %}
""" + FOOT

NOMINATE_TEMPLATE = HEAD + """
<h1>{{ poll.title }}</h1>
{% if success %}
<div class="notice"><strong>Nomination submitted!</strong> Your nomination is pending admin approval.</div>
<a href="{{ url_for('dashboard') }}">Back to Dashboard</a>
{% else %}
<h2>Submit a Nomination</h2>
<form method="POST" enctype="multipart/form-data">
    <p><label>Nominee Name <input type="text" name="nominee_name" value="{{ nominee_name or '' }}" placeholder="Enter nominee's name"></label></p>
    <p><label>Photo (optional) <input type="file" name="image" accept="image/*"></label></p>
    <button type="submit" class="btn">Submit Nomination</button>
</form>
{% endif %}
""" + FOOT

VOTE_TEMPLATE = HEAD + """
<h1>{{ poll.title }}</h1>
{% if has_voted and not just_voted %}<div class="notice">You have already voted in this poll.</div>{% endif %}
{% if not nominations %}
<p>No approved nominations yet.</p>
{% endif %}
{% for nomination in nominations %}
<div class="card">
    {% if nomination.image_url %}<img class="nominee" src="{{ nomination.image_url }}" alt="{{ nomination.nominee_name }}">{% endif %}
    <h3>{{ nomination.nominee_name }}</h3>
    {% if voted_for == nomination.id %}
        <span class="badge">✓ Your vote</span>
    {% else %}
    <form method="POST">
        <input type="hidden" name="nomination_id" value="{{ nomination.id }}">
        <button type="submit" class="btn" {% if has_voted or not account.can_vote %}disabled{% endif %}>
            {{ "Already Voted" if has_voted else "Vote" }}
        </button>
    </form>
    {% endif %}
</div>
{% endfor %}
<a href="{{ url_for('poll_leaderboard', poll_id=poll.id) }}">Live results</a>
""" + FOOT

RESULTS_BLOCK = """
{% for nomination in board.nominations %}
<div class="card" data-nomination="{{ nomination.id }}">
    <strong>#<span class="rank">{{ nomination.rank }}</span> {{ nomination.nominee_name }}</strong>
    <span class="count">{{ nomination.vote_count }} {{ "vote" if nomination.vote_count == 1 else "votes" }} ({{ nomination.percentage }}%)</span>
    <div class="bar" style="width: {{ nomination.percentage }}%"></div>
</div>
{% else %}
<p>No nominations yet.</p>
{% endfor %}
"""

LEADERBOARD_TEMPLATE = HEAD + """
<h1>{{ board.title }}</h1>
<p>
    <span class="badge">{{ board.status.replace("_", " ") }}</span>
    <span id="total">{{ board.total_votes }}</span> votes
    {% if board.countdown %}| <span id="countdown" data-ends-at="{{ board.ends_at }}">{{ board.countdown }}</span>{% endif %}
</p>
<div id="results">
""" + RESULTS_BLOCK + """
</div>
<script>
    // The server applies each vote once and sends the updated counts; rows are patched in place
    const seen = new Set({{ vote_ids | tojson }});
    const results = document.getElementById("results");

    function showCounts(nominations, total) {
        document.getElementById("total").textContent = total;
        nominations.forEach((n) => {
            const row = results.querySelector(`[data-nomination="${n.id}"]`);
            if (!row) return;
            row.querySelector(".rank").textContent = n.rank;
            row.querySelector(".count").textContent = `${n.vote_count} ${n.vote_count === 1 ? "vote" : "votes"} (${n.percentage}%)`;
            row.querySelector(".bar").style.width = `${n.percentage}%`;
            results.appendChild(row);
        });
    }

    const source = new EventSource({{ live_url | tojson }});
    source.addEventListener("snapshot", (e) => {
        const snapshot = JSON.parse(e.data);
        snapshot.vote_ids.forEach((id) => seen.add(id));
        showCounts(snapshot.nominations, snapshot.total_votes);
    });
    source.addEventListener("vote", (e) => {
        const update = JSON.parse(e.data);
        if (seen.has(update.vote.id)) return;
        seen.add(update.vote.id);
        showCounts(update.nominations, update.total_votes);
    });
    window.addEventListener("beforeunload", () => source.close());

    const countdown = document.getElementById("countdown");
    if (countdown) {
        const end = new Date(countdown.dataset.endsAt + "Z").getTime();
        const timer = setInterval(() => {
            const diff = end - Date.now();
            if (diff <= 0) { countdown.textContent = "Voting ended"; clearInterval(timer); return; }
            const d = Math.floor(diff / 86400000), h = Math.floor(diff % 86400000 / 3600000);
            const m = Math.floor(diff % 3600000 / 60000), s = Math.floor(diff % 60000 / 1000);
            countdown.textContent = d > 0 ? `${d}d ${h}h ${m}m` : h > 0 ? `${h}h ${m}m ${s}s` : `${m}m ${s}s`;
        }, 1000);
    }
</script>
""" + FOOT

PUBLIC_LEADERBOARD_TEMPLATE = HEAD + """
<h1>🏆 UniAwards Leaderboard</h1>
<p>View real-time results for all polls. No login required!</p>
{% if not boards %}
<p>No polls yet.</p>
{% endif %}
{% for board in boards %}
<div class="card">
    <h2>{{ board.title }} <span class="badge">{{ board.status.replace("_", " ") }}</span></h2>
    {% if board.description %}<p>{{ board.description }}</p>{% endif %}
    <p>{{ board.total_votes }} total votes</p>
""" + RESULTS_BLOCK + """
</div>
{% endfor %}
""" + FOOT

ERROR_TEMPLATE = HEAD + """
<a href="{{ url_for('dashboard') }}">Back to Dashboard</a>
""" + FOOT

ADMIN_POLLS_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Polls</h1>
<div class="card">
    <h3>Create Poll</h3>
    <form method="POST">
        <input type="hidden" name="action" value="create">
        <p><input type="text" name="title" placeholder="Poll title"></p>
        <p><textarea name="description" rows="2" placeholder="Description"></textarea></p>
        <p>Voting deadline (UTC) <input type="datetime-local" name="ends_at"></p>
        <p><select name="status">{% for value, label in statuses %}<option value="{{ value }}">{{ label }}</option>{% endfor %}</select></p>
        <button type="submit" class="btn">Create</button>
    </form>
</div>
{% for poll in polls %}
<div class="card">
    <form method="POST">
        <input type="hidden" name="action" value="update">
        <input type="hidden" name="poll_id" value="{{ poll.id }}">
        <p><input type="text" name="title" value="{{ poll.title }}"></p>
        <p><textarea name="description" rows="2">{{ poll.description or '' }}</textarea></p>
        <p>Voting deadline (UTC) <input type="datetime-local" name="ends_at" value="{{ (poll.ends_at or '')[:16] }}"></p>
        <p><select name="status">{% for value, label in statuses %}<option value="{{ value }}" {% if poll.status == value %}selected{% endif %}>{{ label }}</option>{% endfor %}</select></p>
        <button type="submit" class="btn">Save</button>
    </form>
</div>
{% endfor %}
""" + FOOT

ADMIN_VOTING_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Voting Control</h1>
{% if not polls %}<p>No polls yet.</p>{% endif %}
{% for poll in polls %}
<div class="card">
    <strong>{{ poll.title }}</strong> <span class="badge">{{ poll.status_label }}</span>
    <form method="POST" style="display: inline">
        <input type="hidden" name="poll_id" value="{{ poll.id }}">
        {% if poll.status in ("NOMINATION_OPEN", "NOMINATION_CLOSED") %}
            <button type="submit" name="status" value="VOTING_OPEN" class="btn">Open Voting</button>
        {% elif poll.status == "VOTING_OPEN" %}
            <button type="submit" name="status" value="VOTING_CLOSED" class="btn danger">Close Voting</button>
        {% endif %}
    </form>
</div>
{% endfor %}
""" + FOOT

ADMIN_NOMINATIONS_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Nominations</h1>
{% if not nominations %}<p>No nominations yet.</p>{% endif %}
{% for nomination in nominations %}
<div class="card">
    {% if nomination.image_url %}<img class="nominee" src="{{ nomination.image_url }}" alt="{{ nomination.nominee_name }}">{% endif %}
    <strong>{{ nomination.nominee_name }}</strong>
    <span class="badge">{{ "Approved" if nomination.approved else "Pending" }}</span>
    <p>Nominated by: {{ nomination.nominated_by }}</p>
    <form method="POST" style="display: inline">
        <input type="hidden" name="nomination_id" value="{{ nomination.id }}">
        <button type="submit" name="approved" value="true" class="btn" {% if nomination.approved %}disabled{% endif %}>Approve</button>
        <button type="submit" name="approved" value="false" class="btn danger" {% if not nomination.approved %}disabled{% endif %}>Reject</button>
    </form>
</div>
{% endfor %}
""" + FOOT

ADMIN_USERS_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Users</h1>
<form method="GET"><input type="text" name="search" value="{{ search or '' }}" placeholder="Search users by email..."> <button class="btn">Search</button></form>
<table>
    <thead><tr><th>Email</th><th>Joined</th><th>Role</th></tr></thead>
    <tbody>
    {% for user in users %}
        <tr>
            <td>{{ user.email }}</td>
            <td>{{ (user.created_at or '')[:10] }}</td>
            <td>
                <form method="POST">
                    <input type="hidden" name="account_id" value="{{ user.id }}">
                    <select name="role">{% for role in roles %}<option value="{{ role }}" {% if user.role == role %}selected{% endif %}>{{ role }}</option>{% endfor %}</select>
                    <button type="submit" class="btn">Save</button>
                </form>
            </td>
        </tr>
    {% else %}
        <tr><td colspan="3">No users found.</td></tr>
    {% endfor %}
    </tbody>
</table>
""" + FOOT

ADMIN_SETTINGS_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Settings</h1>
<p>Restrict who can register and login based on their email address.</p>
<form method="POST">
    <p><label><input type="checkbox" name="enabled" value="true" {% if settings.enabled %}checked{% endif %}> Enable Email Allowlist</label></p>
    <p>Email pattern (regex) <input type="text" name="pattern" value="{{ settings.pattern }}" placeholder=".*@university\\.edu$"></p>
    <p>Rejection message<br><textarea name="message" rows="3">{{ settings.message }}</textarea></p>
    <p>Test email <input type="text" name="test_email" value="{{ test_email or '' }}" placeholder="someone@university.edu">
       <button type="submit" name="action" value="test" class="btn">Test</button></p>
    <button type="submit" name="action" value="save" class="btn">Save Settings</button>
</form>
""" + FOOT

ADMIN_ANALYTICS_TEMPLATE = HEAD + ADMIN_NAV + """
<h1>Analytics</h1>
<table>
    <tr><th>Total Polls</th><td>{{ stats.poll_count }}</td></tr>
    <tr><th>Total Nominations</th><td>{{ stats.nomination_count }}</td></tr>
    <tr><th>Total Votes</th><td>{{ stats.vote_count }}</td></tr>
    <tr><th>Total Users</th><td>{{ stats.user_count }}</td></tr>
</table>
<h3>Votes per poll</h3>
<table>
    {% for row in stats.votes_per_poll %}<tr><td>{{ row.title }}</td><td>{{ row.votes }}</td></tr>{% endfor %}
</table>
""" + FOOT
