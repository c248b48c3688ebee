"""Kubernetes ConfigMap state store.

The ConfigMap is mounted into the pod, so the previous state is read from
the mounted file. Writes go through the Kubernetes API (GET, modify, PUT)
using the pod's service account, which makes the new document visible to
the next run and to anything else mounting the same ConfigMap.
"""

from __future__ import annotations

import logging
import ssl
from pathlib import Path
from typing import Any

import httpx

from tibber_exporter.core.config import StateConfig
from tibber_exporter.core.exceptions import ConfigError, StorageError
from tibber_exporter.core.models import RunState
from tibber_exporter.state.store import FileStateStore, dump_state

logger = logging.getLogger(__name__)

_CONFIGMAP_PATH = "/api/v1/namespaces/{namespace}/configmaps/{name}"


class ConfigMapStateStore:
    """StateStore backed by a ConfigMap key named after the mounted state file.

    Parameters
    ----------
    file_path : str
        Where the ConfigMap key is mounted, e.g. ``/configs/state.yaml``.
        Its base name is the ConfigMap data key.
    configmap_name : str
        Name of the ConfigMap to update.
    namespace : str | None
        Namespace of the ConfigMap. Read from the service account directory
        when None.
    api_url : str
        Kubernetes API server base URL.
    service_account_dir : str
        Directory holding ``token``, ``ca.crt`` and ``namespace``.
    client : httpx.AsyncClient | None
        Pre-built HTTP client (useful for testing).
    """

    def __init__(
        self,
        file_path: str,
        configmap_name: str,
        namespace: str | None = None,
        api_url: str = "https://kubernetes.default.svc",
        service_account_dir: str = "/var/run/secrets/kubernetes.io/serviceaccount",
        request_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        key = Path(file_path).name
        if not key:
            raise ConfigError(
                f"No filename found in state file path {file_path!r}",
                context={"field": "state.file_path", "value": file_path},
            )
        self._key = key
        self._mounted = FileStateStore(file_path)
        self._configmap_name = configmap_name
        self._namespace = namespace
        self._api_url = api_url
        self._sa_dir = Path(service_account_dir)
        self._timeout = request_timeout
        self._client = client

    @classmethod
    def from_config(cls, config: StateConfig) -> ConfigMapStateStore:
        return cls(
            file_path=config.file_path,
            configmap_name=config.configmap_name,
            namespace=config.namespace,
            api_url=config.kube_api_url,
            service_account_dir=config.service_account_dir,
            request_timeout=config.request_timeout,
        )

    async def read(self) -> RunState | None:
        return await self._mounted.read()

    async def write(self, state: RunState) -> None:
        url = _CONFIGMAP_PATH.format(
            namespace=self._resolve_namespace(), name=self._configmap_name
        )

        config_map = await self._request("GET", url, operation="get_configmap")
        data = dict(config_map.get("data") or {})
        data[self._key] = dump_state(state)
        config_map["data"] = data

        await self._request("PUT", url, operation="replace_configmap", json=config_map)
        logger.info("Stored last state in configmap %s", self._configmap_name)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    # --- Kubernetes API ---

    def _resolve_namespace(self) -> str:
        if self._namespace:
            return self._namespace
        ns_file = self._sa_dir / "namespace"
        try:
            self._namespace = ns_file.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise StorageError(
                f"Cannot determine namespace from {ns_file}: {e}",
                context={"operation": "resolve_namespace", "target": str(ns_file)},
            ) from e
        return self._namespace

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            ca_file = self._sa_dir / "ca.crt"
            verify: ssl.SSLContext | bool = True
            if ca_file.exists():
                verify = ssl.create_default_context(cafile=str(ca_file))
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                verify=verify,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    def _auth_headers(self) -> dict[str, str]:
        token_file = self._sa_dir / "token"
        if not token_file.exists():
            return {}
        token = token_file.read_text(encoding="utf-8").strip()
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self, method: str, url: str, operation: str, **kwargs: Any
    ) -> dict:
        target = self._configmap_name
        try:
            response = await self._get_client().request(
                method, url, headers=self._auth_headers(), **kwargs
            )
        except (httpx.HTTPError, OSError) as e:
            raise StorageError(
                f"Kubernetes API request failed: {e}",
                context={"operation": operation, "target": target},
            ) from e

        if response.status_code != 200:
            raise StorageError(
                f"Kubernetes API returned HTTP {response.status_code} for configmap {target}",
                context={
                    "operation": operation,
                    "target": target,
                    "status_code": response.status_code,
                },
            )

        try:
            return response.json()
        except ValueError as e:
            raise StorageError(
                "Kubernetes API returned a non-JSON body",
                context={"operation": operation, "target": target},
            ) from e
