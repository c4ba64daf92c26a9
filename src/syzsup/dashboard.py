"""Dashboard client for polling and fetching kernel patch sets."""

from __future__ import annotations

import base64
import binascii
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .errors import PollFailedError

_DEFAULT_TIMEOUT = 60
_API_PATH = "/api"


class Patch(BaseModel):
    """One patch served by the dashboard.

    ``diff`` arrives base64 encoded and is kept as raw bytes; kernel sources
    are not guaranteed to be UTF-8.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    diff: bytes

    @model_validator(mode="before")
    @classmethod
    def lowercase_keys(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(key).lower(): item for key, item in value.items()}
        return value

    @field_validator("diff", mode="before")
    @classmethod
    def decode_diff(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError):
                return value.encode("utf-8")
        return value


@dataclass
class PatchSet:
    """Current patch set shared between the dashboard and kernel sources.

    ``token`` is written when the dashboard is polled; ``patches`` when the
    dashboard source rebuilds. The kernel source reads both.
    """

    token: str = ""
    patches: list[Patch] = field(default_factory=list)


class DashboardClient:
    """Minimal JSON-over-HTTP client for the dashboard patch API."""

    def __init__(
        self, addr: str, client: str, key: str, *, timeout: float = _DEFAULT_TIMEOUT
    ) -> None:
        self.addr = addr
        self.client = client
        self.key = key
        self.timeout = timeout

    def _url(self) -> str:
        base = self.addr.rstrip("/")
        if "://" not in base:
            base = f"http://{base}"
        return f"{base}{_API_PATH}"

    def _query(self, method: str, payload: object | None = None) -> object:
        body = json.dumps(
            {
                "client": self.client,
                "key": self.key,
                "method": method,
                "payload": payload,
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self._url(),
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return json.load(response)
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
            raise PollFailedError(
                f"dashboard {method} failed ({exc.code} {exc.reason})"
                f"{': ' + detail.strip() if detail.strip() else ''}"
            ) from exc
        except (urllib.error.URLError, TimeoutError) as exc:
            reason = getattr(exc, "reason", exc)
            raise PollFailedError(f"dashboard {method} failed: {reason}") from exc
        except json.JSONDecodeError as exc:
            raise PollFailedError(f"dashboard {method} returned invalid JSON") from exc

    def poll_patches(self) -> str:
        """Return the current patch-set token (empty when there are none)."""
        data = self._query("poll_patches")
        if data is None:
            return ""
        if not isinstance(data, str):
            raise PollFailedError("dashboard poll_patches returned a non-string token")
        return data

    def get_patches(self) -> list[Patch]:
        """Fetch the full current patch set."""
        data = self._query("get_patches")
        if data is None:
            return []
        if not isinstance(data, list):
            raise PollFailedError("dashboard get_patches returned a non-list payload")
        try:
            return [Patch.model_validate(item) for item in data]
        except ValidationError as exc:
            raise PollFailedError(f"dashboard get_patches returned invalid patches: {exc}") from exc
