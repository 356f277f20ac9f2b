"""
================================================================================
Admin Token Manager with Cross-Process Caching
================================================================================

Obtains the bearer token for admin-protected endpoints:
    - Logs in through POST /auth/login with the configured admin credentials
    - Refreshes the token before it expires
    - Shares the token between pytest-xdist workers through a file cache
      guarded by a filelock

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from filelock import FileLock
from loguru import logger


# Token cache configuration
TOKEN_CACHE_DIR = Path(__file__).parent.parent.parent / ".token_cache"
TOKEN_CACHE_FILE = TOKEN_CACHE_DIR / "cache.json"
TOKEN_LOCK_FILE = TOKEN_CACHE_DIR / "cache.lock"

# Backend JWTs live for 24 hours
DEFAULT_TOKEN_TTL = 86400

# Refresh token when less than this many seconds remain
TOKEN_REFRESH_BUFFER = 300  # 5 minutes

LOGIN_ENDPOINT = "/auth/login"


class TokenError(Exception):
    """Raised when token operations fail."""
    pass


class TokenManager:
    """
    Admin token manager with automatic refresh and cross-process caching.

    Cached tokens are keyed by base URL and admin email, so switching the
    target environment never reuses a token issued by another server.

    Usage:
        >>> token_manager = TokenManager(config)
        >>> headers = token_manager.apply({})
        >>> headers["Authorization"]
        'Bearer eyJ...'
    """

    def __init__(
        self,
        config=None,
        transport: Optional[httpx.BaseTransport] = None,
        cache_file: Optional[Path] = None,
    ) -> None:
        """
        Initialize token manager.

        Args:
            config: ConfigLoader instance for configuration access
            transport: Optional httpx transport for the login request
            cache_file: Token cache location (defaults to TOKEN_CACHE_FILE)
        """
        self.config = config
        self.transport = transport
        self.cache_file = Path(cache_file) if cache_file else TOKEN_CACHE_FILE
        self.lock_file = self.cache_file.with_suffix(".lock")

        self._token: Optional[str] = None
        self._user: Optional[Dict[str, Any]] = None
        self._expires_at: float = 0

    @property
    def base_url(self) -> str:
        return self.config.get("api.base_url", "http://localhost:8080/api/v1")

    @property
    def admin_email(self) -> str:
        return self.config.get("auth.admin_email", "admin@aim.edu")

    @property
    def cache_key(self) -> str:
        raw = f"{self.base_url}|{self.admin_email}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]

    @property
    def token(self) -> str:
        """Current valid token, logging in if needed."""
        self._ensure_valid_token()
        return self._token

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        self._ensure_valid_token()
        return self._user

    def apply(self, headers: Dict[str, str]) -> Dict[str, str]:
        """
        Apply the admin bearer token to request headers.

        Args:
            headers: Existing headers dictionary

        Returns:
            New headers dictionary with Authorization added
        """
        result = dict(headers)
        result["Authorization"] = f"Bearer {self.token}"
        return result

    def _ensure_valid_token(self) -> None:
        """
        Ensure token is valid, refreshing if necessary.

        Checks in-memory token, then the file cache (another worker may have
        logged in already), then logs in.
        """
        if self._token and self._expires_at > time.time() + TOKEN_REFRESH_BUFFER:
            return

        if self._use_cached_token():
            return

        self._fetch_token()

    def _use_cached_token(self) -> bool:
        cached = self._load_cached_token()
        if cached and cached["expires_at"] > time.time() + TOKEN_REFRESH_BUFFER:
            self._token = cached["token"]
            self._user = cached.get("user")
            self._expires_at = cached["expires_at"]
            return True
        return False

    def _fetch_token(self) -> None:
        """
        Log in and cache the new token.

        Holds the file lock so concurrent workers log in only once.
        """
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self.lock_file)):
            # Double-check cache after acquiring lock
            if self._use_cached_token():
                return

            token_data = self._request_new_token()

            self._token = token_data["token"]
            self._user = token_data.get("user")
            ttl = int(self.config.get("auth.token_ttl", DEFAULT_TOKEN_TTL))
            self._expires_at = time.time() + ttl

            self._save_token_to_cache()

            logger.info(f"Admin token refreshed for {self.admin_email}")

    def _request_new_token(self) -> Dict[str, Any]:
        """
        Request a new token from the login endpoint.

        Returns:
            The ``data`` object of the login response (token, refresh_token, user)
        """
        payload = {
            "email": self.admin_email,
            "password": self.config.get("auth.admin_password", ""),
        }

        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=float(self.config.get("api.read_timeout", 30)),
                verify=bool(self.config.get("api.verify_ssl", True)),
                transport=self.transport,
            ) as client:
                response = client.post(LOGIN_ENDPOINT, json=payload)
                response.raise_for_status()
                data = response.json().get("data") or {}
        except (httpx.HTTPError, ValueError) as e:
            raise TokenError(f"Admin login failed: {e}") from e

        if not data.get("token"):
            raise TokenError("Admin login response did not contain a token")
        return data

    def _load_cached_token(self) -> Optional[Dict[str, Any]]:
        """Load this manager's token entry from the file cache."""
        try:
            if self.cache_file.exists():
                with open(self.cache_file, "r", encoding="utf-8") as f:
                    return json.load(f).get(self.cache_key)
        except (json.JSONDecodeError, OSError) as e:
            logger.debug(f"Ignoring unreadable token cache: {e}")
        return None

    def _save_token_to_cache(self) -> None:
        """Save current token to file cache, keeping other entries."""
        cache: Dict[str, Any] = {}
        try:
            if self.cache_file.exists():
                with open(self.cache_file, "r", encoding="utf-8") as f:
                    cache = json.load(f)
        except (json.JSONDecodeError, OSError):
            cache = {}

        cache[self.cache_key] = {
            "token": self._token,
            "user": self._user,
            "expires_at": self._expires_at,
        }

        try:
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(cache, f)
        except OSError as e:
            logger.warning(f"Failed to cache token: {e}")

    def invalidate(self) -> None:
        """
        Invalidate current token.

        Forces next request to log in again.
        """
        self._token = None
        self._user = None
        self._expires_at = 0

        if self.cache_file.exists():
            self.cache_file.unlink()


__all__ = [
    "TokenManager",
    "TokenError",
]
