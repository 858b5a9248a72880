import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from requests import exceptions as requests_exceptions

from .interactions.models import Interaction, SearchMode


PLATFORM_BASE_URL = "https://api.example-social.com/v1"
PLATFORM_BASE_ENV = "MENTIONLOOP_API_BASE"
CREDENTIALS_PATH = Path.home() / ".config" / "mentionloop" / "credentials.json"

logger = logging.getLogger("mentionloop.interactions")


class PlatformError(RuntimeError):
    pass


class PlatformAuthError(PlatformError):
    pass


class PlatformResponseError(PlatformError):
    """The request succeeded but the response body could not be read."""


@dataclass
class PlatformCredentials:
    api_key: str
    source: str = "unknown"

    @classmethod
    def load(cls) -> "PlatformCredentials":
        """Load the bearer token from env or ~/.config/mentionloop/credentials.json.

        Priority:
        1. MENTIONLOOP_API_KEY env var
        2. credentials.json file
        """
        api_key = os.getenv("MENTIONLOOP_API_KEY")
        source = "env:MENTIONLOOP_API_KEY"

        if not api_key and CREDENTIALS_PATH.exists():
            with CREDENTIALS_PATH.open("r", encoding="utf-8") as f:
                data = json.load(f)
            api_key = data.get("api_key")
            source = f"file:{CREDENTIALS_PATH}"

        api_key = str(api_key or "").strip()
        if not api_key:
            raise PlatformAuthError(
                "Missing platform API key. Set MENTIONLOOP_API_KEY or create "
                f"{CREDENTIALS_PATH} with an 'api_key' field."
            )
        return cls(api_key=api_key, source=source)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # Seconds or milliseconds since the epoch.
        seconds = value / 1000.0 if value > 10_000_000_000 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(value or "").strip()
    if text:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def interaction_from_payload(payload: Dict[str, Any]) -> Interaction:
    """Build an Interaction from one post object as returned by the platform."""
    post = payload if isinstance(payload, dict) else {}
    # Single objects may arrive wrapped, e.g. {"data": {"post": {...}}}.
    for key in ("data", "post"):
        if isinstance(post.get(key), dict):
            post = post[key]
    author = post.get("author") or post.get("user") or {}
    if not isinstance(author, dict):
        author = {}

    post_id = _first(post.get("id"), post.get("id_str"))
    if post_id is None:
        raise PlatformError(f"Platform post without an id: {post!r}"[:300])
    author_id = _first(author.get("id"), author.get("user_id"), post.get("author_id"), post.get("user_id"))
    handle = _first(author.get("handle"), author.get("username"), post.get("username"), "")
    display_name = _first(author.get("name"), author.get("display_name"), post.get("name"), handle)
    parent_id = _first(
        post.get("in_reply_to_id"),
        post.get("in_reply_to_status_id"),
        post.get("parent_id"),
    )
    conversation_id = _first(post.get("conversation_id"), post.get("thread_id"), post_id)

    return Interaction(
        id=str(post_id),
        author_id=str(author_id if author_id is not None else handle),
        author_handle=str(handle).lstrip("@"),
        author_display_name=str(display_name),
        text=str(_first(post.get("text"), post.get("content"), "")),
        conversation_id=str(conversation_id),
        created_at=_parse_timestamp(_first(post.get("created_at"), post.get("timestamp"))),
        parent_id=str(parent_id) if parent_id is not None else None,
        url=_first(post.get("url"), post.get("permanent_url")),
    )


def extract_posts(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if not isinstance(payload, dict):
        return []
    for key in ("posts", "data", "items", "results"):
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return []


class PlatformClient:
    """Minimal REST client for the search/fetch/post primitives the agent needs."""

    def __init__(self, credentials: Optional[PlatformCredentials] = None):
        self.credentials = credentials or PlatformCredentials.load()
        self.base_url = str(os.getenv(PLATFORM_BASE_ENV) or PLATFORM_BASE_URL).strip().rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _check(self, resp: requests.Response, label: str) -> None:
        if resp.status_code in {401, 403}:
            try:
                data = resp.json()
            except Exception:
                data = {}
            message = data.get("error") or data.get("hint") or "Authentication required"
            raise PlatformAuthError(f"Platform auth error {resp.status_code}: {message}")

        if resp.status_code >= 400:
            try:
                data = resp.json()
            except Exception:
                data = {}
            message = data.get("error") or data.get("message") or resp.text
            raise PlatformError(f"Platform {label} error {resp.status_code}: {message}")

    def get_me(self) -> Dict[str, Any]:
        try:
            resp = requests.get(self._url("me"), headers=self._headers, timeout=30)
        except requests_exceptions.Timeout as e:
            raise PlatformError("Timed out while contacting the platform for /me.") from e
        except requests_exceptions.RequestException as e:
            raise PlatformError(f"Platform /me request failed: {e}") from e
        self._check(resp, "profile")
        return resp.json()

    def search(self, query: str, limit: int = 20, mode: SearchMode = SearchMode.LATEST) -> List[Interaction]:
        if not query.strip():
            raise ValueError("Search query must be provided.")
        params = {"q": query, "limit": limit, "mode": mode.value}
        try:
            resp = requests.get(self._url("search"), headers=self._headers, params=params, timeout=30)
        except requests_exceptions.Timeout as e:
            raise PlatformError(
                "Timed out while contacting the platform search endpoint. "
                "Check the API base URL is reachable and try again."
            ) from e
        except requests_exceptions.RequestException as e:
            raise PlatformError(f"Platform search request failed: {e}") from e
        self._check(resp, "search")
        results: List[Interaction] = []
        for item in extract_posts(resp.json()):
            try:
                results.append(interaction_from_payload(item))
            except PlatformError as e:
                logger.warning("Skipping malformed search result query=%r error=%s", query, e)
                continue
        return results

    def get_by_id(self, interaction_id: str) -> Optional[Interaction]:
        if not str(interaction_id).strip():
            raise ValueError("interaction_id must be provided")
        try:
            resp = requests.get(self._url(f"posts/{interaction_id}"), headers=self._headers, timeout=30)
        except requests_exceptions.Timeout as e:
            raise PlatformError(f"Timed out while fetching post '{interaction_id}'.") from e
        except requests_exceptions.RequestException as e:
            raise PlatformError(f"Platform fetch failed for '{interaction_id}': {e}") from e

        # Deleted or protected posts come back as 404/410.
        if resp.status_code in {404, 410}:
            return None
        self._check(resp, "fetch")
        return interaction_from_payload(resp.json())

    def post(self, text: str, in_reply_to: Optional[str] = None) -> Interaction:
        if not text:
            raise ValueError("Post text must be provided.")
        payload: Dict[str, Any] = {"text": text}
        if in_reply_to:
            payload["in_reply_to_id"] = in_reply_to

        try:
            resp = requests.post(
                self._url("posts"),
                headers=self._headers,
                data=json.dumps(payload),
                timeout=60,
            )
        except requests_exceptions.Timeout as e:
            raise PlatformError(
                "Timed out while creating a post. "
                "The platform may be slow or temporarily unavailable."
            ) from e
        except requests_exceptions.RequestException as e:
            raise PlatformError(f"Platform post request failed: {e}") from e
        self._check(resp, "post")
        # The post is live once the status check passes.
        try:
            return interaction_from_payload(resp.json())
        except (PlatformError, ValueError) as e:
            raise PlatformResponseError(
                f"Post accepted with status {resp.status_code} but the response was unreadable: {e}"
            ) from e
