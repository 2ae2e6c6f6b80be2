"""Installed-app OAuth for the Google Calendar and Tasks APIs.

One token (``.google-tokens/token.json``) covers both scopes. The first call
may open a browser for consent; credential loading and discovery-document
builds are blocking, so they run in a worker thread.
"""

import asyncio
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from loguru import logger

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/tasks",
]

TOKEN_PATH = Path(".google-tokens") / "token.json"

_services: dict[tuple[str, str], object] = {}
_lock = asyncio.Lock()


def _client_config(client_id: str, client_secret: str) -> dict:
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


def _authorize(client_id: str, client_secret: str) -> Credentials:
    token_path = Path.cwd() / TOKEN_PATH
    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES) if token_path.exists() else None
    if creds is not None and creds.valid:
        return creds

    if creds is not None and creds.expired and creds.refresh_token:
        logger.debug("Refreshing Google OAuth token")
        creds.refresh(Request())
    else:
        logger.info("Starting Google OAuth consent flow in the browser")
        flow = InstalledAppFlow.from_client_config(_client_config(client_id, client_secret), SCOPES)
        creds = flow.run_local_server(port=0)

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    return creds


def _build_service(api_name: str, version: str, client_id: str, client_secret: str):
    return build(api_name, version, credentials=_authorize(client_id, client_secret), cache_discovery=False)


async def get_google_service(api_name: str, version: str, client_id: str, client_secret: str):
    if not client_id or not client_secret:
        raise RuntimeError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set in .env")

    key = (api_name, version)
    async with _lock:
        service = _services.get(key)
        if service is None:
            service = await asyncio.to_thread(_build_service, api_name, version, client_id, client_secret)
            _services[key] = service
    return service


async def get_calendar_service(client_id: str, client_secret: str):
    return await get_google_service("calendar", "v3", client_id, client_secret)


async def get_tasks_service(client_id: str, client_secret: str):
    return await get_google_service("tasks", "v1", client_id, client_secret)


async def list_all_items(list_method, **params) -> list[dict]:
    """Call a Google ``list`` method page by page and collect every ``items`` entry."""
    items: list[dict] = []
    page_token = None
    while True:
        request = list_method(**params, pageToken=page_token) if page_token else list_method(**params)
        response = await asyncio.to_thread(request.execute)
        items.extend(response.get("items", []))
        page_token = response.get("nextPageToken")
        if not page_token:
            return items
