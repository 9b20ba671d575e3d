"""
Last-measurement state kept in a Kubernetes ConfigMap.

The previous run's measurement is the baseline for spike sanitization. It is
stored as JSON in a ConfigMap that is also mounted into the pod:

- read_state(): read the mounted file. A missing or corrupt file only lowers
  sanitization quality, so it is logged and treated as "no previous state".
  A file that exists but cannot be read at all raises :class:`StateError`.
- store_state(measurement): write the JSON into the ConfigMap through the
  in-cluster Kubernetes API (GET, update ``data``, PUT) using the pod's
  service account token. Failures raise :class:`StateError`.

The key inside the ConfigMap is the file name of the mount path, so the next
run finds it at the same location.

CHANGELOG:
- 2026-10-18: Treat a corrupt state file as missing state
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import ssl
from pathlib import Path

import httpx
from pydantic import ValidationError

from exporter.src.errors import StateError
from exporter.src.models import Measurement

logger = logging.getLogger(__name__)

KUBERNETES_API_URL: str = "https://kubernetes.default.svc"
"""In-cluster address of the Kubernetes API server."""

SERVICE_ACCOUNT_DIR: Path = Path("/var/run/secrets/kubernetes.io/serviceaccount")
"""Mount point of the pod's service account token, namespace and CA bundle."""

_REQUEST_TIMEOUT_S = 10.0


class StateClient:
    """Reads and writes the last measurement.

    Args:
        measurement_file_path: Path of the mounted state file.
        config_map_name: Name of the ConfigMap to update.
        api_url: Base URL of the Kubernetes API server.
        service_account_dir: Directory with ``namespace``, ``token`` and
            optionally ``ca.crt``.
        transport: Optional httpx transport, used to stub the API in tests.

    Usage::

        state = StateClient("/configs/last-measurement.json", "jarvis-tp-link-hs-110-exporter")
        last = state.read_state()
        ...
        await state.store_state(measurement)
    """

    def __init__(
        self,
        measurement_file_path: str | Path,
        config_map_name: str,
        *,
        api_url: str = KUBERNETES_API_URL,
        service_account_dir: str | Path = SERVICE_ACCOUNT_DIR,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._measurement_file_path = Path(measurement_file_path)
        self._config_map_name = config_map_name
        self._api_url = api_url.rstrip("/")
        self._service_account_dir = Path(service_account_dir)
        self._transport = transport

    @property
    def config_map_key(self) -> str:
        """Key of the measurement JSON inside the ConfigMap's ``data``."""
        return self._measurement_file_path.name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read_state(self) -> Measurement | None:
        """Return the last stored measurement, or ``None`` if there is none.

        A file that does not hold a valid measurement is logged and ignored.

        Raises:
            StateError: If the state file exists but cannot be read.
        """
        path = self._measurement_file_path
        if not path.exists():
            logger.info("No state file at %s, starting without last measurement", path)
            return None

        logger.info("State file %s exists, reading contents...", path)
        try:
            return Measurement.model_validate_json(path.read_bytes())
        except OSError as exc:
            raise StateError(f"failed reading state file {path}: {exc}") from exc
        except ValidationError as exc:
            logger.warning(
                "Ignoring corrupt state file %s, starting without last measurement: %s",
                path,
                exc.errors()[0]["msg"],
            )
            return None

    async def store_state(self, measurement: Measurement) -> None:
        """Write *measurement* into the state ConfigMap.

        Raises:
            StateError: If the service account files cannot be read or the
                Kubernetes API rejects the request.
        """
        try:
            namespace = (self._service_account_dir / "namespace").read_text().strip()
            token = (self._service_account_dir / "token").read_text().strip()
        except OSError as exc:
            raise StateError(f"failed reading service account: {exc}") from exc

        url = (
            f"{self._api_url}/api/v1/namespaces/{namespace}"
            f"/configmaps/{self._config_map_name}"
        )

        try:
            async with httpx.AsyncClient(
                headers={"Authorization": f"Bearer {token}"},
                verify=self._verify(),
                timeout=_REQUEST_TIMEOUT_S,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                config_map = response.json()

                data = config_map.get("data") or {}
                data[self.config_map_key] = measurement.model_dump_json(by_alias=True)
                config_map["data"] = data

                response = await client.put(url, json=config_map)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StateError(
                f"Kubernetes API returned HTTP {exc.response.status_code} "
                f"for configmap {self._config_map_name}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StateError(
                f"failed updating configmap {self._config_map_name}: {exc}"
            ) from exc

        logger.info(
            "Stored measurement in configmap %s/%s", namespace, self._config_map_name
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _verify(self) -> ssl.SSLContext | bool:
        """TLS verification against the cluster CA when mounted, else system CAs."""
        ca_path = self._service_account_dir / "ca.crt"
        if ca_path.exists():
            return ssl.create_default_context(cafile=str(ca_path))
        return True
