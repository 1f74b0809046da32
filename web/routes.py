"""
web/routes.py -- Jinja2 template routes for the SoundHub web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user, like and catalog stores) but return HTML or redirects
instead of JSON. Domain errors raised here (NotFound, Forbidden,
OAuthStateMismatch, OAuthProviderError) are rendered by the handlers in
api/main.py.

Route registration order matters. FastAPI resolves same-level paths in order:
  - GET /login/demo/{kind} is a sub-path of /login and is registered first.
  - GET /auth/{provider}/callback is registered before GET /auth/{provider}.

Routes:
  GET  /                                   -- home: most played and newest tracks
  GET  /playlists                          -- playlist index with visible counts
  GET  /playlist/{playlist_id}             -- playlist detail (hidden tracks counted, not shown)
  GET  /author/{author_id}                 -- author page with stats
  GET  /track/{track_id}                   -- track page (hidden -> 404)
  GET  /search                             -- all visible tracks, optional ?q filter
  GET  /library                            -- the visitor's liked tracks
  GET  /profile                            -- account summary or guest notice
  GET  /register, POST /register           -- local registration
  GET  /login/demo/{kind}                  -- one-click demo accounts
  GET  /login, POST /login                 -- local login
  GET|POST /logout                         -- clear the session
  GET  /auth/{provider}/callback           -- OAuth callback
  GET  /auth/{provider}                    -- OAuth redirect to provider
  GET  /artist/upload, POST /artist/upload -- artist track submission (artist only)
  GET  /admin                              -- moderation queue (admin only)
  POST /admin/tracks/{id}/approve|reject|delete, /admin/playlists/{id}/delete
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, login_rate_limit
from auth.dependencies import get_session, require_role, try_get_current_user
from auth.models import User
from auth.oauth import OAuthProvider, get_enabled_providers, new_state
from auth.passwords import authenticate_local
from auth.session import SessionContext, sanitize_next
from auth.store import DEMO_ACCOUNT_IDS, UserStore, validate_local_credentials
from catalog.models import STATUS_PENDING, STATUS_REJECTED, Author, Track
from catalog.store import CatalogStore
from catalog.visibility import Requester, can_moderate, can_see_status, is_visible
from core.config import get_settings
from core.errors import DuplicateEmail, Forbidden, InvalidInput, NotFound, OAuthStateMismatch
from likes.service import get_effective_likes, merge_guest_into_user
from likes.store import LikeStore
from web.uploads import AUDIO_EXTENSIONS, IMAGE_EXTENSIONS, read_upload, store_upload

logger = logging.getLogger("soundhub.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= and ?success= query params [M3].
# The raw query param is NEVER passed to templates -- only the message from
# these dicts is. Prevents reflected XSS via crafted query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "bad_email": "Enter a valid email address.",
    "short_password": "Password must be at least 6 characters.",
    "password_mismatch": "Passwords do not match.",
    "duplicate_email": "An account with this email already exists.",
    "unknown_demo": "Unknown demo account.",
    "demo_disabled": "Demo accounts are disabled on this server.",
    "oauth_unavailable": "This sign-in provider is not configured.",
    "title_required": "Track title is required.",
    "bad_audio_type": "Audio: mp3, wav, ogg, m4a or aac only.",
    "bad_cover_type": "Cover: png, jpg, jpeg or webp only.",
    "file_too_large": "Files must be 30 MB or smaller.",
}

_SUCCESS_MESSAGES: dict[str, str] = {
    "submitted": "Track submitted for moderation.",
}


def _message(table: dict[str, str], request: Request, param: str) -> Optional[str]:
    return table.get(request.query_params.get(param, ""))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def _like_store(request: Request) -> LikeStore:
    return request.app.state.like_store


def _user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def _track_rows(tracks: list[Track], authors: dict[str, Author], liked: list[str]) -> list[dict]:
    """Pair each track with its artist name and the visitor's like flag."""
    liked_set = set(liked)
    rows = []
    for t in tracks:
        author = authors.get(t.artist_id)
        rows.append(
            {
                "track": t,
                "artist": author.name if author else "Unknown",
                "is_liked": t.id in liked_set,
            }
        )
    return rows


def _render(
    request: Request,
    template: str,
    user: Optional[User],
    status_code: int = 200,
    **context,
) -> HTMLResponse:
    """Render a page with the values every layout needs.

    current_user, likes and providers are filled here so individual handlers
    only pass what is specific to their page.
    """
    session = get_session(request)
    ctx = {
        "current_user": user,
        "effective_likes": get_effective_likes(session, user, _like_store(request)),
        "providers": get_enabled_providers(request.app.state.oauth_providers),
        "demo_login_enabled": get_settings().demo_login_enabled,
        "title": "SoundHub",
        "headline": None,
        "subline": None,
    }
    ctx.update(context)
    return templates.TemplateResponse(request, template, ctx, status_code=status_code)


def _establish_session(request: Request, session: SessionContext, user_id: str) -> None:
    """Log user_id in and fold any guest likes into the account."""
    session.user_id = user_id
    likes = _like_store(request)
    likes.ensure(user_id)
    merge_guest_into_user(session, user_id, likes)


def _login_redirect(next_url: str) -> RedirectResponse:
    resp = RedirectResponse(next_url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _with_query(path: str, **params: str) -> str:
    query = urlencode({k: v for k, v in params.items() if v})
    return f"{path}?{query}" if query else path


def _base_url(request: Request) -> str:
    """Origin used to build OAuth callback URLs.

    BASE_URL wins when set. Otherwise X-Forwarded-Proto/Host (reverse proxy)
    and finally the request itself.
    """
    explicit = get_settings().base_url
    if explicit:
        return explicit.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto.split(',')[0].strip()}://{host.split(',')[0].strip()}"


def _callback_uri(request: Request, provider: str) -> str:
    return f"{_base_url(request)}/auth/{provider}/callback"


def _get_provider(request: Request, provider: str) -> Optional[OAuthProvider]:
    return request.app.state.oauth_providers.get(provider)


# ---------------------------------------------------------------------------
# Catalog pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    """Most played four and newest three of the tracks the visitor may see."""
    user = try_get_current_user(request)
    catalog = _catalog(request)
    tracks = catalog.visible_tracks(Requester.for_user(user))
    authors = {a.id: a for a in catalog.list_authors()}
    liked = get_effective_likes(get_session(request), user, _like_store(request))

    top = sorted(tracks, key=lambda t: t.plays, reverse=True)[:4]
    return _render(
        request,
        "home.html",
        user,
        title="Home",
        headline="SoundHub",
        subline="Listen to tracks, like them and build your library.",
        top_tracks=_track_rows(top, authors, liked),
        new_tracks=_track_rows(tracks[:3], authors, liked),
    )


@router.get("/playlists", response_class=HTMLResponse)
def playlists(request: Request) -> HTMLResponse:
    user = try_get_current_user(request)
    catalog = _catalog(request)
    visible_ids = {t.id for t in catalog.visible_tracks(Requester.for_user(user))}
    items = [
        {"playlist": p, "visible_count": sum(1 for tid in p.track_ids if tid in visible_ids)}
        for p in catalog.list_playlists()
    ]
    return _render(
        request,
        "playlists.html",
        user,
        title="Playlists",
        headline="Playlists",
        subline="Editorial and community playlists." if items else None,
        playlists=items,
    )


@router.get("/playlist/{playlist_id}", response_class=HTMLResponse)
def playlist_detail(request: Request, playlist_id: str) -> HTMLResponse:
    """Playlist tracks in playlist order; hidden or deleted ones are only counted."""
    user = try_get_current_user(request)
    catalog = _catalog(request)
    playlist = catalog.get_playlist(playlist_id)
    if playlist is None:
        raise NotFound("Playlist not found")

    by_id = {t.id: t for t in catalog.visible_tracks(Requester.for_user(user))}
    tracks = [by_id[tid] for tid in playlist.track_ids if tid in by_id]
    hidden = len(playlist.track_ids) - len(tracks)
    authors = {a.id: a for a in catalog.list_authors()}
    liked = get_effective_likes(get_session(request), user, _like_store(request))

    subline = f"{len(tracks)} tracks"
    if hidden:
        subline += f" • hidden: {hidden}"
    if playlist.extra.get("total"):
        subline += f" • {playlist.extra['total']}"
    return _render(
        request,
        "playlist.html",
        user,
        title=playlist.title,
        headline=playlist.title,
        subline=subline,
        playlist=playlist,
        items=_track_rows(tracks, authors, liked),
        hidden_count=hidden,
    )


@router.get("/author/{author_id}", response_class=HTMLResponse)
def author_detail(request: Request, author_id: str) -> HTMLResponse:
    user = try_get_current_user(request)
    catalog = _catalog(request)
    author = catalog.get_author(author_id)
    if author is None:
        raise NotFound("Author not found")

    requester = Requester.for_user(user)
    tracks = [t for t in catalog.visible_tracks(requester) if t.artist_id == author.id]
    liked = get_effective_likes(get_session(request), user, _like_store(request))
    stats = {
        "tracks": len(tracks),
        "followers": author.followers,
        "plays": sum(t.plays for t in tracks),
    }
    return _render(
        request,
        "author.html",
        user,
        title=author.name,
        headline=author.name,
        subline=author.tagline,
        author=author,
        tracks=_track_rows(tracks, {author.id: author}, liked),
        stats=stats,
        show_status=can_see_status(requester, author.id),
    )


@router.get("/track/{track_id}", response_class=HTMLResponse)
def track_detail(request: Request, track_id: str) -> HTMLResponse:
    """Track page. A track the visitor may not see is reported as missing."""
    user = try_get_current_user(request)
    catalog = _catalog(request)
    requester = Requester.for_user(user)
    track = catalog.get_track(track_id)
    if track is None or not is_visible(track, requester):
        raise NotFound("Track not found")

    authors = {a.id: a for a in catalog.list_authors()}
    author = authors.get(track.artist_id)
    liked = get_effective_likes(get_session(request), user, _like_store(request))
    related = [t for t in catalog.visible_tracks(requester) if t.id != track.id][:4]
    return _render(
        request,
        "track.html",
        user,
        title=track.title,
        headline=track.title,
        subline=f"{author.name if author else 'Unknown'} • {track.genre}",
        row=_track_rows([track], authors, liked)[0],
        author=author,
        related=_track_rows(related, authors, liked),
        show_status=can_see_status(requester, track.artist_id),
    )


@router.get("/search", response_class=HTMLResponse)
def search(request: Request, q: str = "") -> HTMLResponse:
    """Visible tracks, filtered by a case-insensitive match on title, artist or genre."""
    user = try_get_current_user(request)
    catalog = _catalog(request)
    authors = {a.id: a for a in catalog.list_authors()}
    liked = get_effective_likes(get_session(request), user, _like_store(request))
    rows = _track_rows(catalog.visible_tracks(Requester.for_user(user)), authors, liked)

    needle = q.strip().lower()
    if needle:
        rows = [
            r
            for r in rows
            if needle in r["track"].title.lower() or needle in r["artist"].lower() or needle in r["track"].genre.lower()
        ]
    return _render(
        request,
        "search.html",
        user,
        title="Browse",
        headline="Browse and search",
        subline="Search tracks and authors.",
        results=rows,
        q=q.strip(),
    )


@router.get("/library", response_class=HTMLResponse)
def library(request: Request) -> HTMLResponse:
    user = try_get_current_user(request)
    catalog = _catalog(request)
    liked = get_effective_likes(get_session(request), user, _like_store(request))
    liked_set = set(liked)
    tracks = [t for t in catalog.visible_tracks(Requester.for_user(user)) if t.id in liked_set]
    authors = {a.id: a for a in catalog.list_authors()}

    if user is not None:
        subline = f"Liked tracks • {len(tracks)}"
    else:
        subline = f"Guest mode • likes: {len(tracks)}"
    return _render(
        request,
        "library.html",
        user,
        title="Library",
        headline="Library",
        subline=subline,
        liked_tracks=_track_rows(tracks, authors, liked),
    )


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    user = try_get_current_user(request)
    if user is None:
        return _render(
            request,
            "profile.html",
            None,
            title="Profile",
            headline="Guest",
            subline="Signing in is optional; you can keep browsing as a guest.",
        )
    return _render(request, "profile.html", user, title="Profile", headline=user.display_name or "Profile")


# ---------------------------------------------------------------------------
# Auth routes -- register, login, logout, OAuth
# ---------------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    params = request.query_params
    return _render(
        request,
        "register.html",
        try_get_current_user(request),
        title="Register",
        headline="Register",
        subline="Create an account or keep going as a guest.",
        next_url=sanitize_next(params.get("next")),
        error_msg=_message(_ERROR_MESSAGES, request, "error"),
        email=params.get("email", ""),
        display_name=params.get("name", ""),
    )


@router.post("/register", response_class=HTMLResponse)
@limiter.limit(login_rate_limit)
def register_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    password2: str = Form(""),
    display_name: str = Form("", alias="displayName"),
    next_url: str = Form("/", alias="next"),
) -> RedirectResponse:
    """Create a local account, log it in and merge guest likes.

    On a validation failure the visitor is sent back to the form with an
    error code and the fields they typed (except passwords).
    """
    next_url = sanitize_next(next_url)
    display_name = display_name.strip()

    def back(reason: str) -> RedirectResponse:
        url = _with_query("/register", error=reason, next=next_url, email=email.strip(), name=display_name)
        return RedirectResponse(url, status_code=302)

    try:
        validate_local_credentials(email, password)
        if password != password2:
            return back("password_mismatch")
        user = _user_store(request).register_local(email, password, display_name)
    except InvalidInput as exc:
        return back(exc.reason)
    except DuplicateEmail:
        return back("duplicate_email")

    _establish_session(request, get_session(request), user.id)
    return _login_redirect(next_url)


@router.get("/login/demo/{kind}")
def demo_login(request: Request, kind: str, next_url: str = Query("/", alias="next")) -> RedirectResponse:
    """Log in as one of the seeded demo accounts (admin, artist or user)."""
    if not get_settings().demo_login_enabled:
        return RedirectResponse("/login?error=demo_disabled", status_code=302)
    user_id = DEMO_ACCOUNT_IDS.get(kind)
    if user_id is None or _user_store(request).get_by_id(user_id) is None:
        return RedirectResponse("/login?error=unknown_demo", status_code=302)

    _establish_session(request, get_session(request), user_id)
    logger.info("Demo login as %s", user_id)
    return _login_redirect(sanitize_next(next_url))


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page with email/password form, demo and OAuth buttons."""
    next_url = sanitize_next(request.query_params.get("next"))
    user = try_get_current_user(request)
    if user is not None:
        return RedirectResponse(next_url, status_code=302)
    return _render(
        request,
        "login.html",
        None,
        title="Sign in",
        headline="Sign in",
        subline="Signing in is optional; you can keep browsing as a guest.",
        next_url=next_url,
        error_msg=_message(_ERROR_MESSAGES, request, "error"),
    )


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(login_rate_limit)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("/", alias="next"),
) -> RedirectResponse:
    """Handle email/password login form submission."""
    next_url = sanitize_next(next_url)
    user = authenticate_local(_user_store(request), email, password)  # [C1] timing equalization
    if user is None:
        logger.info("Failed local login")
        return RedirectResponse(_with_query("/login", error="bad_credentials", next=next_url), status_code=302)

    _establish_session(request, get_session(request), user.id)
    logger.info("Local login %s", user.id)
    return _login_redirect(next_url)


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Drop the whole session (identity and guest likes) and go home."""
    get_session(request).clear()
    return RedirectResponse("/", status_code=302)


@router.get("/auth/{provider}/callback")
def oauth_callback(
    request: Request,
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
) -> RedirectResponse:
    """Finish an OAuth login.

    Flow:
      1. Compare state with the one stored for this provider. A mismatch is a
         400 and leaves the session exactly as it was.
      2. Exchange the code and fetch the profile (OAuthProviderError -> 500).
      3. Find, link or create the account from the normalized identity.
      4. Log in, merge guest likes, consume state/next, redirect to next.
    """
    oauth = _get_provider(request, provider)
    if oauth is None:
        return RedirectResponse("/login?error=oauth_unavailable", status_code=302)

    session = get_session(request)
    if not session.check_oauth_state(provider, state):
        raise OAuthStateMismatch(provider)
    if not code:
        raise HTTPException(status_code=400, detail={"code": "missing_code", "message": "No code"})

    identity = oauth.complete(code, _callback_uri(request, provider))
    user = _user_store(request).upsert_oauth_user(identity)

    _establish_session(request, session, user.id)
    next_url = session.finish_oauth(provider)
    logger.info("OAuth login via %s as %s", provider, user.id)
    return _login_redirect(next_url)


@router.get("/auth/{provider}")
def oauth_redirect(request: Request, provider: str, next_url: str = Query("/", alias="next")) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    Unknown or unconfigured providers never reach an external URL, so the
    provider name cannot be used to build an open redirect.
    """
    oauth = _get_provider(request, provider)
    if oauth is None:
        return RedirectResponse("/login?error=oauth_unavailable", status_code=302)

    state = new_state()
    get_session(request).begin_oauth(provider, state, next_url)
    return RedirectResponse(oauth.authorization_url(_callback_uri(request, provider), state), status_code=302)


# ---------------------------------------------------------------------------
# Artist: upload
# ---------------------------------------------------------------------------


@router.get("/artist/upload", response_class=HTMLResponse)
def artist_upload_form(request: Request) -> HTMLResponse:
    user, redirect = require_role(request, "artist")
    if redirect:
        return redirect
    return _render(
        request,
        "artist_upload.html",
        user,
        title="Add a track",
        headline="Add a track",
        subline="New tracks join the moderation queue and go public once an admin approves them.",
        error_msg=_message(_ERROR_MESSAGES, request, "error"),
        success_msg=_message(_SUCCESS_MESSAGES, request, "success"),
        artist_id=user.artist_id,
    )


@router.post("/artist/upload", response_class=HTMLResponse)
async def artist_upload(
    request: Request,
    title: str = Form(""),
    genre: str = Form(""),
    duration: str = Form(""),
    audio: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
) -> RedirectResponse:
    """Validate the form and both files, then queue the track as pending.

    Both files are read and checked before either is written, so a bad cover
    never leaves an orphaned audio file behind.
    """
    user, redirect = require_role(request, "artist")
    if redirect:
        return redirect
    if not user.artist_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_artist_id", "message": "This account is not linked to an author."},
        )

    title = title.strip()
    if not title:
        return RedirectResponse("/artist/upload?error=title_required", status_code=302)

    settings = get_settings()
    try:
        audio_file = await read_upload(audio, AUDIO_EXTENSIONS, settings.max_upload_bytes, "bad_audio_type")
        cover_file = await read_upload(cover, IMAGE_EXTENSIONS, settings.max_upload_bytes, "bad_cover_type")
    except InvalidInput as exc:
        return RedirectResponse(f"/artist/upload?error={quote(exc.reason)}", status_code=302)

    audio_path = store_upload(*audio_file, "audio", settings.upload_dir) if audio_file else None
    cover_path = store_upload(*cover_file, "covers", settings.upload_dir) if cover_file else None

    _catalog(request).create_track(
        title=title,
        artist_id=user.artist_id,
        submitted_by=user.id,
        genre=genre.strip(),
        duration=duration.strip(),
        audio=audio_path,
        cover=cover_path,
    )
    return RedirectResponse("/artist/upload?success=submitted", status_code=302)


# ---------------------------------------------------------------------------
# Admin: moderation and playlists
# ---------------------------------------------------------------------------


@router.get("/admin", response_class=HTMLResponse)
def admin_panel(request: Request) -> HTMLResponse:
    user, redirect = require_role(request, "admin")
    if redirect:
        return redirect
    catalog = _catalog(request)
    tracks = catalog.visible_tracks(Requester.for_user(user))
    authors = {a.id: a for a in catalog.list_authors()}
    return _render(
        request,
        "admin.html",
        user,
        title="Admin",
        headline="Admin panel",
        subline="Track moderation and playlist management.",
        pending=_track_rows([t for t in tracks if t.status == STATUS_PENDING], authors, []),
        rejected=_track_rows([t for t in tracks if t.status == STATUS_REJECTED], authors, []),
        playlists=catalog.list_playlists(),
    )


def _moderation_target(request: Request, track_id: str) -> tuple[Optional[Track], Optional[RedirectResponse]]:
    """Resolve the admin and the track for a moderation action.

    Returns (track, None) when the action may proceed, (None, redirect) when
    nobody is logged in. Raises NotFound / Forbidden otherwise.
    """
    user, redirect = require_role(request, "admin")
    if redirect:
        return None, redirect
    track = _catalog(request).get_track(track_id)
    if track is None:
        raise NotFound("Track not found")
    if not can_moderate(Requester.for_user(user), track):
        raise Forbidden("Not allowed to moderate this track")
    logger.info("Admin %s moderating %s", user.id, track_id)
    return track, None


@router.post("/admin/tracks/{track_id}/approve")
def admin_approve(request: Request, track_id: str) -> RedirectResponse:
    track, redirect = _moderation_target(request, track_id)
    if redirect:
        return redirect
    _catalog(request).approve(track.id)
    return RedirectResponse("/admin", status_code=302)


@router.post("/admin/tracks/{track_id}/reject")
def admin_reject(request: Request, track_id: str) -> RedirectResponse:
    track, redirect = _moderation_target(request, track_id)
    if redirect:
        return redirect
    _catalog(request).reject(track.id)
    return RedirectResponse("/admin", status_code=302)


@router.post("/admin/tracks/{track_id}/delete")
def admin_delete_track(request: Request, track_id: str) -> RedirectResponse:
    track, redirect = _moderation_target(request, track_id)
    if redirect:
        return redirect
    _catalog(request).delete_track(track.id)
    return RedirectResponse("/admin", status_code=302)


@router.post("/admin/playlists/{playlist_id}/delete")
def admin_delete_playlist(request: Request, playlist_id: str) -> RedirectResponse:
    user, redirect = require_role(request, "admin")
    if redirect:
        return redirect
    _catalog(request).delete_playlist(playlist_id)
    logger.info("Admin %s deleted playlist %s", user.id, playlist_id)
    return RedirectResponse("/admin", status_code=302)
