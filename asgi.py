"""
asgi.py -- Application assembly for SoundHub.

This is the ONLY file that imports from both api/ and web/. It joins the JSON
endpoints, the server-rendered pages and the static public directory into a
single ASGI app. api/main.py knows nothing about web/; web/routes.py knows
nothing about api/ beyond the shared limiter.

Run with:  uvicorn asgi:app --reload
           python main.py --reload
"""

from fastapi.staticfiles import StaticFiles

from api.main import app
from core.config import get_settings
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])

# Static files go last: the mount at "/" would otherwise shadow the page routes.
# check_dir=False lets the app start before public/ exists (uploads create it).
app.mount("/", StaticFiles(directory=get_settings().public_dir, check_dir=False), name="public")
