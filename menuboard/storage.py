from __future__ import annotations
import base64
import hashlib
import json
import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import requests

from .errors import ConnectivityError, StorageConflict
from .util import is_date_code, korean_long_date

logger = logging.getLogger("menuboard.storage")

GITHUB_API = "https://api.github.com"
USER_AGENT = "menuboard-bot"


@dataclass(frozen=True)
class StoredFile:
    content: str
    version: str


class Storage(Protocol):
    def read(self, key: str) -> Optional[StoredFile]: ...
    def write(self, key: str, content: str, expected_version: Optional[str] = None, message: str = "") -> str: ...
    def list(self, prefix: str) -> List[str]: ...
    def ping(self) -> bool: ...


class GitHubStorage:
    """Versioned storage on top of the GitHub contents API; the blob sha is the version token."""

    def __init__(self, token: Optional[str], owner: str, repo: str, branch: str = "main",
                 session: Optional[requests.Session] = None, timeout: float = 30):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/vnd.github+json"})
        if token:
            self.session.headers["Authorization"] = f"token {token}"

    def _url(self, key: str = "") -> str:
        base = f"{GITHUB_API}/repos/{self.owner}/{self.repo}"
        return f"{base}/contents/{key}" if key else base

    def _request(self, method: str, url: str, **kw) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kw)
        except requests.RequestException as e:
            raise ConnectivityError(f"GitHub request failed: {e}") from e

    def read(self, key: str) -> Optional[StoredFile]:
        resp = self._request("GET", self._url(key), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ConnectivityError(f"GitHub read {key} failed: HTTP {resp.status_code}")
        body = resp.json()
        content = base64.b64decode(body.get("content", "")).decode("utf-8")
        return StoredFile(content=content, version=body["sha"])

    def write(self, key: str, content: str, expected_version: Optional[str] = None, message: str = "") -> str:
        payload: Dict[str, Any] = {
            "message": message or f"Update {key}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if expected_version:
            payload["sha"] = expected_version
        resp = self._request("PUT", self._url(key), json=payload)
        if resp.status_code in (409, 422):
            raise StorageConflict(f"version mismatch writing {key}: HTTP {resp.status_code}")
        if resp.status_code not in (200, 201):
            raise ConnectivityError(f"GitHub write {key} failed: HTTP {resp.status_code} {resp.text[:200]}")
        return resp.json().get("content", {}).get("sha", "")

    def list(self, prefix: str) -> List[str]:
        folder = prefix.rstrip("/") if prefix.endswith("/") else posixpath.dirname(prefix)
        resp = self._request("GET", self._url(folder), params={"ref": self.branch})
        if resp.status_code == 404:
            return []
        if resp.status_code != 200:
            raise ConnectivityError(f"GitHub list {folder or '/'} failed: HTTP {resp.status_code}")
        return sorted(f["path"] for f in resp.json() if f.get("type") == "file" and f["path"].startswith(prefix))

    def ping(self) -> bool:
        try:
            return self._request("GET", self._url()).status_code == 200
        except ConnectivityError:
            return False

    def public_url(self, key: str) -> str:
        return f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{self.branch}/{key}"


class LocalStorage:
    """Directory-backed storage for dry runs; version token is the sha1 of the content."""

    def __init__(self, root: str):
        self.root = Path(root)

    @staticmethod
    def _version(content: str) -> str:
        return hashlib.sha1(content.encode("utf-8")).hexdigest()

    def read(self, key: str) -> Optional[StoredFile]:
        path = self.root / key
        if not path.is_file():
            return None
        content = path.read_text(encoding="utf-8")
        return StoredFile(content=content, version=self._version(content))

    def write(self, key: str, content: str, expected_version: Optional[str] = None, message: str = "") -> str:
        current = self.read(key)
        if current is not None and current.version != expected_version:
            raise StorageConflict(f"version mismatch writing {key}")
        if current is None and expected_version:
            raise StorageConflict(f"{key} vanished since it was read")
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return self._version(content)

    def list(self, prefix: str) -> List[str]:
        if not self.root.exists():
            return []
        keys = (p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file())
        return sorted(k for k in keys if k.startswith(prefix))

    def ping(self) -> bool:
        return self.root.is_dir()


# ---------- menu records ----------

def menu_key(prefix: str, date_code: str) -> str:
    return f"{prefix}{date_code}.json"


def date_code_of(key: str, prefix: str) -> Optional[str]:
    if not key.startswith(prefix) or not key.endswith(".json"):
        return None
    code = key[len(prefix):-len(".json")]
    return code if is_date_code(code) else None


def build_record(date_code: str, caption_text: str, items: List[str], sections: List[Dict[str, Any]],
                 strategy: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now()
    return {
        "date": korean_long_date(date_code),
        "originalDateText": caption_text,
        "menuDate": date_code,
        "timestamp": now.isoformat(timespec="seconds"),
        "menuItems": items,
        "sections": sections,
        "count": len(items),
        "strategy": strategy,
    }


def save_record(storage: Storage, key: str, record: Dict[str, Any]) -> str:
    """Create the key, or update it conditionally on the version we just read."""
    existing = storage.read(key)
    content = json.dumps(record, ensure_ascii=False, indent=2)
    message = f"Update menu data for {record.get('menuDate')} ({record.get('originalDateText')})"
    if existing is not None:
        logger.info("Updating existing %s (version %s)", key, existing.version[:10])
    return storage.write(key, content, expected_version=existing.version if existing else None, message=message)


def load_record(storage: Storage, prefix: str, date_code: str) -> Optional[Dict[str, Any]]:
    f = storage.read(menu_key(prefix, date_code))
    if f is None:
        return None
    data = json.loads(f.content)
    if not isinstance(data.get("menuItems"), list):
        raise ValueError(f"malformed menu record for {date_code}")
    return data


def available_dates(storage: Storage, prefix: str) -> List[str]:
    codes = (date_code_of(k, prefix) for k in storage.list(prefix))
    return sorted((c for c in codes if c), reverse=True)
