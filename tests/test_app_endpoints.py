import dataclasses
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from gamelog.app import create_app
from gamelog.errors import StoreUnavailable


@pytest.fixture()
def app(settings, catalog, identity_provider):
    return create_app(settings, catalog=catalog, identity_provider=identity_provider)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


def _register(client, email="a@example.com", password="pw123"):
    return client.post("/register", data={"username": email, "password": password})


def _add(client, game_id, rating, completed="", review=""):
    return client.post(
        "/add-game",
        data={"game_id": str(game_id), "rating": str(rating), "completed": completed, "review": review},
    )


def test_register_logs_in_and_lands_on_secrets(client):
    r = _register(client)
    assert r.status_code == 200
    assert r.url.path == "/secrets"
    assert "a@example.com" in r.text
    assert client.cookies.get("gamelog_session")


def test_session_cookie_flags(client):
    r = client.post("/register", data={"username": "a@example.com", "password": "pw123"}, follow_redirects=False)
    assert r.status_code == 303
    cookie = r.headers["set-cookie"].lower()
    assert "httponly" in cookie
    assert "samesite=lax" in cookie
    assert "max-age=3600" in cookie


def test_duplicate_registration_shows_error(client):
    _register(client)
    client.cookies.clear()
    r = _register(client, password="other")
    assert r.status_code == 409
    assert "already exists" in r.text


def test_login_success_and_generic_failure(client):
    _register(client)
    client.cookies.clear()

    wrong = client.post("/login", data={"username": "a@example.com", "password": "nope"})
    unknown = client.post("/login", data={"username": "ghost@example.com", "password": "pw123"})
    assert wrong.status_code == unknown.status_code == 200
    assert "Invalid email or password." in wrong.text
    assert "Invalid email or password." in unknown.text
    assert not client.cookies.get("gamelog_session")

    ok = client.post("/login", data={"username": "a@example.com", "password": "pw123"})
    assert ok.url.path == "/secrets"


def test_login_redirects_to_safe_next_only(client):
    _register(client)
    client.cookies.clear()
    r = client.post("/login", data={"username": "a@example.com", "password": "pw123", "next": "/add"},
                    follow_redirects=False)
    assert r.headers["location"] == "/add"

    client.cookies.clear()
    r = client.post("/login", data={"username": "a@example.com", "password": "pw123", "next": "//evil.example"},
                    follow_redirects=False)
    assert r.headers["location"] == "/secrets"


def test_protected_routes_redirect_to_login(client):
    for path in ("/add", "/secrets"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == f"/login?next={path}"
    r = client.post("/sort", data={"sort": "rating"}, follow_redirects=False)
    assert r.status_code == 303


def test_anonymous_home_prompts_sign_in(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Log in" in r.text
    assert "MobyGames" in r.text


def test_add_edit_delete_flow(client):
    _register(client)
    r = _add(client, 1, 8, "2024-05-01", "Classic")
    assert r.url.path == "/"
    assert "Doom" in r.text
    assert "https://img.example/doom.jpg" in r.text

    review_id = client.app.state.services.reviews.list_reviews(1)[0].id

    r = client.post("/edit", data={"edit": str(review_id)})
    assert r.status_code == 200
    assert 'name="review_id"' in r.text

    r = client.post("/edit-game", data={"review_id": str(review_id), "rating": "10", "completed": "", "review": "Even better"})
    assert "Even better" in r.text
    assert "10/10" in r.text

    r = client.post("/delete", data={"delete": str(review_id)})
    assert "Doom" not in r.text


def test_add_validation_and_catalog_errors(client, catalog):
    _register(client)
    bad = _add(client, 1, 42)
    assert bad.status_code == 400
    assert "between 1 and 10" in bad.text

    missing = _add(client, 999, 5)
    assert missing.status_code == 502
    assert "catalog" in missing.text


def test_home_renders_without_catalog(client, catalog):
    _register(client)
    _add(client, 2, 7)
    catalog.down = True
    r = client.get("/")
    assert r.status_code == 200
    assert "Myst" in r.text


def test_sort_is_per_session(app, client):
    _register(client)
    _add(client, 1, 5)   # Doom 1993-12-10
    _add(client, 3, 9)   # Celeste 2018

    client.post("/sort", data={"sort": "title"})
    r = client.get("/")
    assert r.text.index("Doom") < r.text.index("Celeste")

    with TestClient(app) as other:
        _register(other, "b@example.com")
        _add(other, 1, 5)
        _add(other, 3, 9)
        r2 = other.get("/")
        # Default release-date order is unaffected by the first user's choice
        assert r2.text.index("Celeste") < r2.text.index("Doom")


def test_cannot_touch_another_users_review(app, client):
    _register(client)
    _add(client, 1, 5)
    review_id = app.state.services.reviews.list_reviews(1)[0].id

    with TestClient(app) as other:
        _register(other, "b@example.com")
        r = other.post("/edit", data={"edit": str(review_id)})
        assert r.status_code == 404
        r = other.post("/delete", data={"delete": str(review_id)})
        assert r.status_code == 404
    assert len(app.state.services.reviews.list_reviews(1)) == 1


def test_logout_invalidates_server_side_session(client):
    _register(client)
    token = client.cookies.get("gamelog_session")

    r = client.get("/logout")
    assert r.url.path == "/"
    assert not client.cookies.get("gamelog_session")

    # Replaying the old cookie does not authenticate
    client.cookies.set("gamelog_session", token)
    r = client.get("/secrets", follow_redirects=False)
    assert r.status_code == 303

    # Logging out twice is harmless
    assert client.post("/logout").status_code == 200


def test_google_sign_in_flow(app, client, identity_provider):
    start = client.get("/auth/google", follow_redirects=False)
    assert start.status_code == 303
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]

    r = client.get("/auth/google/profile", params={"code": "code-new", "state": state})
    assert r.url.path == "/secrets"
    assert "new@example.com" in r.text
    assert "with Google" in r.text

    client.get("/logout")
    start = client.get("/auth/google", follow_redirects=False)
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
    r = client.get("/auth/google/profile", params={"code": "code-new-again", "state": state})
    assert r.url.path == "/secrets"
    assert app.state.services.users.count() == 1


@pytest.mark.parametrize(
    "params",
    [
        {"error": "access_denied"},
        {"code": "code-new", "state": "forged"},
        {"code": "bad-code", "state": None},
    ],
)
def test_google_sign_in_failures_redirect_to_login(app, client, params):
    start = client.get("/auth/google", follow_redirects=False)
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
    if "state" in params and params["state"] is None:
        params = {**params, "state": state}

    r = client.get("/auth/google/profile", params=params)
    assert r.url.path == "/login"
    assert "Sign-in failed" in r.text
    assert app.state.services.users.count() == 0


def test_google_disabled_redirects_to_login(settings, catalog):
    app = create_app(settings, catalog=catalog)
    with TestClient(app) as c:
        r = c.get("/auth/google", follow_redirects=False)
        assert r.headers["location"] == "/login?error=signin"
        assert "Sign in with Google" not in c.get("/login").text


def test_store_unavailable_renders_error_page(app, client, monkeypatch):
    _register(client)

    def boom(*a, **kw):
        raise StoreUnavailable("down")

    monkeypatch.setattr(app.state.services.reviews, "home_entries", boom)
    r = client.get("/")
    assert r.status_code == 503
    assert "temporarily unavailable" in r.text

    monkeypatch.setattr(app.state.services.sessions, "resolve_session", boom)
    r = client.get("/secrets")
    assert r.status_code == 503


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_failed_login_redirects_back_to_login_view(client):
    _register(client)
    client.cookies.clear()
    r = client.post("/login", data={"username": "a@example.com", "password": "nope", "next": "/add"},
                    follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?error=credentials&next=/add"
    assert "set-cookie" not in r.headers


def test_rolling_session_reissues_cookie_on_activity(settings, catalog):
    rolling = dataclasses.replace(settings, session_rolling=True, session_ttl_seconds=100)
    with TestClient(create_app(rolling, catalog=catalog)) as c:
        _register(c)
        r = c.get("/secrets")
        assert r.status_code == 200
        cookie = r.headers.get("set-cookie", "").lower()
        assert cookie.startswith("gamelog_session=")
        assert "max-age=100" in cookie
        assert "httponly" in cookie

        r = c.get("/logout", follow_redirects=False)
        assert len(r.headers.get_list("set-cookie")) == 1


def test_fixed_session_does_not_reissue_cookie(client):
    _register(client)
    r = client.get("/secrets")
    assert r.status_code == 200
    assert "set-cookie" not in r.headers
