"""SilkPath Studio — FastAPI dashboard application.

This module defines the dashboard application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`silkpath.core.config.config`
  (environment + ``.env``).
- **Gallery persistence** uses a single ``gallery.json`` document managed by
  :class:`~silkpath.core.gallery_store.GalleryStore`.
- **Instagram** credentials, token refresh, and publishing are handled by
  :mod:`silkpath.core.credentials`, :mod:`silkpath.core.token_manager`, and
  :mod:`silkpath.core.publisher`.
- **Image generation** is never done in-process: ``POST /api/generate`` runs
  the generation driver (``python -m silkpath.generator``) as a subprocess.
- **The HTML page** is served as a raw ``HTMLResponse``; all dynamic data is
  fetched by the page's JavaScript.

Endpoints
---------
========  ================================  ================================
Method    Path                              Purpose
========  ================================  ================================
GET       ``/``                             Dashboard HTML page
GET       ``/images/{file}``                Generated images (public URLs)
GET       ``/style-images/{file}``          Style reference thumbnails
GET       ``/api/gallery``                  Gallery listing with filters
GET       ``/api/gallery/{id}``             Single gallery record
GET       ``/api/stats``                    Gallery statistics
POST      ``/api/favorite/{id}``            Toggle favourite
PUT       ``/api/caption/{id}``             Edit caption
DELETE    ``/api/image/{id}``               Delete record and image file
GET       ``/download/{id}``                Download the image file
GET       ``/api/hijab-styles``             Hijab style folders
GET       ``/api/style-images``             Style reference photos
POST      ``/api/generate``                 Run the generation driver
POST      ``/api/post-to-instagram``        Publish an image
GET       ``/api/instagram-status``         Connection and token state
POST      ``/api/refresh-token``            Connect with a pasted token
POST      ``/api/extend-token``             Extend the stored token
GET       ``/auth/instagram``               Start the OAuth flow
GET       ``/auth/instagram/callback``      Finish the OAuth flow
POST      ``/auth/instagram/disconnect``    Forget the stored credential
========  ================================  ================================

Usage
-----
CLI (installed entry point)::

    silkpath

Direct invocation::

    python -m silkpath.api.main
"""

from __future__ import annotations

import html
import logging
import subprocess
import sys
import threading
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from silkpath import __version__
from silkpath.api.models import CaptionRequest, GenerateRequest, PostRequest, TokenRequest
from silkpath.core.config import StudioConfig, config
from silkpath.core.credentials import CredentialResolver, CredentialStore
from silkpath.core.exceptions import (
    ConfigurationError,
    GenerationError,
    ImageNotFoundError,
    StudioError,
)
from silkpath.core.gallery_store import GalleryStore, paginate_gallery_entries
from silkpath.core.graph_client import GraphClient
from silkpath.core.publisher import PollPolicy, Publisher
from silkpath.core.token_manager import TokenLifecycleManager
from silkpath.generator.cli import build_argv
from silkpath.generator.driver import GenerationOptions
from silkpath.generator.inputs import list_hijab_styles, list_image_files

logger = logging.getLogger(__name__)

TEMPLATES_DIR: Path = Path(__file__).resolve().parent.parent / "templates"

GeneratorRunner = Callable[[list[str], float], subprocess.CompletedProcess]

_CONFIG_HELP = """
<h2>Configuration Required</h2>
<p>Add these to your .env file:</p>
<pre>
FB_APP_ID=your_facebook_app_id
FB_APP_SECRET=your_facebook_app_secret
PUBLIC_URL=https://your-ngrok-url.ngrok.io
</pre>
<p><a href="/">Back to Dashboard</a></p>
"""


def run_generator_subprocess(argv: list[str], timeout: float) -> subprocess.CompletedProcess:
    """Run the generation driver in a child process and wait for it."""
    return subprocess.run(
        [sys.executable, "-m", "silkpath.generator", *argv],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _message_page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    content = (
        "<!DOCTYPE html><html><head><title>"
        f"{html.escape(title)}</title></head><body>"
        f"<h2>{html.escape(title)}</h2><p>{html.escape(body)}</p>"
        '<p><a href="/">Back to Dashboard</a></p></body></html>'
    )
    return HTMLResponse(content=content, status_code=status_code)


def _tail(text: str | None, lines: int = 20) -> str:
    return "\n".join((text or "").strip().splitlines()[-lines:])


def create_app(
    cfg: StudioConfig | None = None,
    *,
    graph_client: GraphClient | None = None,
    poll_policy: PollPolicy | None = None,
    runner: GeneratorRunner | None = None,
) -> FastAPI:
    """Build the dashboard application.

    Args:
        cfg: Configuration; defaults to the global ``config``.
        graph_client: Graph API client; built from ``cfg`` when omitted.
        poll_policy: Container readiness poll policy; built from ``cfg``
            when omitted.
        runner: Runs the generation driver; defaults to a subprocess.

    Returns:
        The configured FastAPI application.
    """
    cfg = cfg or config
    graph = graph_client or GraphClient.from_config(cfg)
    store = CredentialStore(cfg.tokens_file)
    resolver = CredentialResolver.from_config(store, cfg)
    tokens = TokenLifecycleManager.from_config(store, graph, cfg)
    publisher = Publisher(
        resolver,
        graph,
        poll_policy=poll_policy
        or PollPolicy(interval=cfg.publish_poll_interval, max_attempts=cfg.publish_poll_attempts),
        refresh_window=timedelta(days=cfg.token_refresh_window_days),
    )
    gallery = GalleryStore(cfg.gallery_db, cfg.output_dir)
    run_generator = runner or run_generator_subprocess
    generation_lock = threading.Lock()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Load the stored credential and refresh it in the background if needed."""
        tokens.startup(background=True)
        logger.info(f"FB App ID: {'set' if cfg.fb_app_id else 'not set'}")
        logger.info(f"FB App Secret: {'set' if cfg.fb_app_secret else 'not set'}")
        logger.info(f"Public URL: {cfg.public_url or 'not set'}")
        if not cfg.oauth_configured:
            logger.warning("Instagram OAuth disabled: set FB_APP_ID, FB_APP_SECRET and PUBLIC_URL")

        yield

        graph.close()

    app = FastAPI(
        title="SilkPath Studio",
        description="Hijab fashion photo generation dashboard with Instagram publishing.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.credential_store = store
    app.state.resolver = resolver
    app.state.tokens = tokens
    app.state.publisher = publisher
    app.state.gallery = gallery

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Generated images must be reachable at PUBLIC_URL/images/<file> for
    # Instagram to fetch them.
    app.mount("/images", StaticFiles(directory=str(cfg.output_dir)), name="images")
    app.mount("/style-images", StaticFiles(directory=str(cfg.style_input_dir)), name="style-images")

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # ------------------------------------------------------------------
    # Page
    # ------------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        index_path = TEMPLATES_DIR / "index.html"
        if index_path.exists():
            return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
        raise HTTPException(status_code=404, detail="index.html not found")

    # ------------------------------------------------------------------
    # Gallery
    # ------------------------------------------------------------------

    @app.get("/api/gallery")
    def get_gallery(
        favorites_only: bool = False,
        hijab_style: str | None = None,
        posted: bool | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> dict:
        """List gallery images newest first.

        Without ``per_page`` every matching image is returned.
        """
        images = gallery.list_images(
            favorites_only=favorites_only,
            hijab_style=hijab_style,
            posted=posted,
        )
        if per_page is None:
            return {"total": len(images), "images": images}
        return paginate_gallery_entries(images, page, per_page)

    @app.get("/api/gallery/{image_id}")
    def get_image(image_id: int) -> dict:
        return gallery.get(image_id)

    @app.get("/api/stats")
    def get_stats() -> dict:
        return gallery.stats()

    @app.post("/api/favorite/{image_id}")
    def toggle_favorite(image_id: int) -> dict:
        entry = gallery.toggle_favorite(image_id)
        return {"success": True, "id": image_id, "favorited": entry["favorited"]}

    @app.put("/api/caption/{image_id}")
    def update_caption(image_id: int, req: CaptionRequest) -> dict:
        entry = gallery.set_caption(image_id, req.caption)
        return {"success": True, "id": image_id, "caption": entry["caption"]}

    @app.delete("/api/image/{image_id}")
    def delete_image(image_id: int) -> dict:
        gallery.delete(image_id)
        return {"success": True, "deleted": image_id}

    @app.get("/download/{image_id}")
    def download_image(image_id: int) -> FileResponse:
        entry = gallery.get(image_id)
        path = gallery.image_path(entry)
        if path is None or not path.exists():
            raise ImageNotFoundError("Image file not found")
        return FileResponse(path, filename=path.name)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    @app.get("/api/hijab-styles")
    def get_hijab_styles() -> dict:
        return {"styles": list_hijab_styles(cfg.hijab_input_dir)}

    @app.get("/api/style-images")
    def get_style_images() -> dict:
        return {"images": [p.name for p in list_image_files(cfg.style_input_dir)]}

    @app.post("/api/generate")
    def generate(req: GenerateRequest) -> dict:
        """Run the generation driver once and report the new gallery records.

        Only one run is allowed at a time; a second request gets 409.
        """
        options = GenerationOptions(
            hijab=req.hijab_style,
            color=req.color,
            provider=req.provider,
            amazon=req.amazon,
            caption=req.caption,
            prompt=req.prompt,
            style_images=req.style_images,
        )
        argv = build_argv(options)

        if not generation_lock.acquire(blocking=False):
            raise HTTPException(status_code=409, detail="A generation run is already in progress")
        try:
            before = {entry.get("id") for entry in gallery.load()["images"]}
            logger.info(f"Starting generator: {' '.join(argv)}")
            try:
                result = run_generator(argv, cfg.generation_timeout)
            except subprocess.TimeoutExpired as e:
                raise GenerationError(f"Generation timed out after {int(cfg.generation_timeout)} seconds") from e
        finally:
            generation_lock.release()

        output = _tail(result.stderr) or _tail(result.stdout)
        if result.returncode != 0:
            raise GenerationError(f"Generation failed (exit code {result.returncode}):\n{output}")

        created = [e for e in gallery.list_images() if e.get("id") not in before]
        return {"success": True, "images": created, "output": output}

    # ------------------------------------------------------------------
    # Instagram
    # ------------------------------------------------------------------

    @app.post("/api/post-to-instagram")
    def post_to_instagram(req: PostRequest) -> dict:
        """Publish a gallery image and mark it as posted.

        This call blocks while Instagram processes the container (up to the
        poll budget, 30 seconds by default).
        """
        if not cfg.public_url:
            raise ConfigurationError(
                "PUBLIC_URL not configured. Instagram requires images to be publicly "
                "accessible. Set PUBLIC_URL in .env (e.g., use ngrok)"
            )
        entry = gallery.get(req.image_id)
        path = gallery.image_path(entry)
        if path is None or not path.exists():
            raise ImageNotFoundError("Image file not found")

        caption = req.caption if req.caption is not None else entry.get("caption", "")
        image_url = f"{cfg.public_url}/images/{quote(path.name)}"

        media_id = publisher.publish(image_url, caption)
        gallery.mark_posted(req.image_id, media_id)
        return {"success": True, "instagramMediaId": media_id}

    @app.get("/api/instagram-status")
    def instagram_status() -> dict:
        credentials = resolver.current_credentials()
        record = store.record
        return {
            "connected": credentials is not None,
            "username": credentials.username if credentials else None,
            "source": credentials.source if credentials else None,
            "tokenState": tokens.state().value,
            "expiresAt": record.expires_at.isoformat() if record and record.expires_at else None,
            "oauthConfigured": cfg.oauth_configured,
            "hasPublicUrl": bool(cfg.public_url),
            "publicUrl": cfg.public_url,
        }

    @app.post("/api/refresh-token")
    def refresh_token(req: TokenRequest) -> dict:
        if not req.token.strip():
            raise HTTPException(status_code=400, detail="Token is required")
        record = tokens.connect_with_token(req.token)
        return {
            "success": True,
            "username": record.username,
            "expiresAt": record.expires_at.isoformat() if record.expires_at else None,
        }

    @app.post("/api/extend-token")
    def extend_token() -> dict:
        record = tokens.refresh()
        return {"success": True, "expiresAt": record.expires_at.isoformat()}

    @app.get("/auth/instagram")
    def auth_instagram():
        if not cfg.oauth_configured:
            return HTMLResponse(content=_CONFIG_HELP)
        return RedirectResponse(tokens.authorization_url())

    @app.get("/auth/instagram/callback")
    def auth_instagram_callback(code: str | None = None, error: str | None = None) -> HTMLResponse:
        if error:
            return _message_page("Authorization Error", error)
        if not code:
            return _message_page("No authorization code received", "Start again from the dashboard.")
        try:
            record = tokens.exchange_code(code)
        except StudioError as e:
            logger.error(f"OAuth error: {e}")
            return _message_page("Error", e.message, status_code=e.status_code)
        return _message_page(
            "Instagram Connected!",
            f"@{record.username} - you can now post directly to Instagram from the dashboard.",
        )

    @app.post("/auth/instagram/disconnect")
    def auth_instagram_disconnect() -> dict:
        tokens.disconnect()
        return {"success": True}

    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~silkpath.core.config.config`
    (``DASHBOARD_HOST`` / ``DASHBOARD_PORT``).  Defaults to ``0.0.0.0:3000``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "silkpath.api.main:app",
        host=config.dashboard_host,
        port=config.dashboard_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
