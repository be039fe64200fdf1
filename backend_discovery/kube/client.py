"""REST client for the core/v1 Services and Endpoints of the target cluster."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import requests

from ..config import KubernetesConfig
from ..exceptions import KubeAlreadyExists, KubeAPIError, KubeConflict, KubeNotFound

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class KubeClient:
    """Thin wrapper around the Kubernetes core/v1 API.

    The underlying ``requests.Session`` is shared by every worker thread; only
    connection pooling state lives in it.
    """

    def __init__(self, config: KubernetesConfig):
        self._base = config.base_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers["Accept"] = "application/json"
        token = self._load_token(config)
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        if config.verify_ssl and config.ca_file and Path(config.ca_file).is_file():
            self._session.verify = config.ca_file
        else:
            self._session.verify = config.verify_ssl
        self._timeout = config.timeout

    @staticmethod
    def _load_token(config: KubernetesConfig) -> str:
        if config.token:
            return config.token
        if config.token_file and Path(config.token_file).is_file():
            return Path(config.token_file).read_text().strip()
        return ""

    # ── Objects ─────────────────────────────────────────────────────

    def list_objects(self, resource: str, namespace: str, label_selector: str | None = None) -> list[dict[str, Any]]:
        params = {"labelSelector": label_selector} if label_selector else None
        resp = self._get(self._path(resource, namespace), params=params)
        return resp.json().get("items") or []

    def get_object(self, resource: str, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            resp = self._get(self._path(resource, namespace, name))
        except KubeNotFound:
            return None
        return resp.json()

    def create_object(self, resource: str, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = self._post(self._path(resource, namespace), json=body)
        return resp.json()

    def patch_object(self, resource: str, namespace: str, name: str, patch: dict[str, Any]) -> dict[str, Any]:
        resp = self._request(
            "PATCH",
            self._path(resource, namespace, name),
            data=json.dumps(patch),
            headers={"Content-Type": MERGE_PATCH},
        )
        return resp.json()

    def delete_object(self, resource: str, namespace: str, name: str) -> None:
        self._delete(self._path(resource, namespace, name))

    # ── Internal HTTP helpers ───────────────────────────────────────

    @staticmethod
    def _path(resource: str, namespace: str, name: str | None = None) -> str:
        path = f"/api/v1/namespaces/{namespace}/{resource}"
        if name:
            path = f"{path}/{name}"
        return path

    def _get(self, path: str, params: dict | None = None) -> requests.Response:
        return self._request("GET", path, params=params)

    def _post(self, path: str, json: Any = None) -> requests.Response:
        return self._request("POST", path, json=json)

    def _delete(self, path: str) -> requests.Response:
        return self._request("DELETE", path)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base}{path}"
        kwargs.setdefault("timeout", self._timeout)
        logger.debug("%s %s params=%s", method, path, kwargs.get("params"))

        try:
            resp = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise KubeAPIError(f"Request failed: {exc}") from exc

        if resp.status_code < 400:
            return resp

        reason = self._status_reason(resp)
        if resp.status_code == 404:
            raise KubeNotFound(f"{method} {path}: not found", response_body=resp.text)
        if resp.status_code == 409:
            if reason == "AlreadyExists":
                raise KubeAlreadyExists(f"{method} {path}: already exists", response_body=resp.text)
            raise KubeConflict(f"{method} {path}: conflict", response_body=resp.text)

        raise KubeAPIError(
            f"HTTP {resp.status_code} on {method} {path}: {resp.text}",
            status_code=resp.status_code,
            response_body=resp.text,
            reason=reason,
        )

    @staticmethod
    def _status_reason(resp: requests.Response) -> str | None:
        """Extract ``reason`` from a Kubernetes Status response body."""
        try:
            body = resp.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("reason")
        return None
