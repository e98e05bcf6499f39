"""Discovery of how to reach the kubelet: locally or through the API server proxy."""

from __future__ import annotations

import logging
import posixpath
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.auth import AuthBase

HEALTHZ_PATH = "/healthz"
DEFAULT_HTTP_KUBELET_PORT = 10255
DEFAULT_HTTPS_KUBELET_PORT = 10250

_API_PROXY_PATH = "/api/v1/nodes/{}/proxy/"
_HTTP = "http"
_HTTPS = "https"
_TOKEN_REFRESH_SECONDS = 60.0

NodeGetter = Callable[[str], Mapping[str, Any]]


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _close(response: Any) -> None:
    close = getattr(response, "close", None)
    if callable(close):
        close()


@dataclass
class ConnectorConfig:
    """Settings used to locate and authenticate against the kubelet."""

    node_name: str = ""
    node_ip: str = ""
    kubelet_port: int = 0
    kubelet_scheme: str = ""
    kubelet_timeout: Optional[float] = None
    api_server_host: str = ""
    bearer_token_file: str = ""
    api_insecure: bool = False
    api_ca_file: Optional[str] = None


@dataclass
class ConnParams:
    """A base URL for the kubelet together with the session used to reach it."""

    url: str
    session: Any
    timeout: Optional[float] = None

    def url_for(self, path: str) -> str:
        """The base URL with ``path`` joined onto its path."""
        parts = urlsplit(self.url)
        return urlunsplit(
            (parts.scheme, parts.netloc, _join_path(parts.path, path), parts.query, "")
        )


class _BearerTokenFileAuth(AuthBase):
    """Attaches a bearer token read from a file, re-reading it periodically."""

    def __init__(self, token_file: str):
        self._path = Path(token_file)
        self._token = self._read()
        self._read_at = time.monotonic()

    def _read(self) -> str:
        return self._path.read_text().strip()

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        if time.monotonic() - self._read_at >= _TOKEN_REFRESH_SECONDS:
            try:
                self._token = self._read()
            except OSError:
                pass
            self._read_at = time.monotonic()
        request.headers["Authorization"] = f"Bearer {self._token}"
        return request


def _bearer_auth(token_file: str) -> Optional[AuthBase]:
    if not token_file:
        return None
    return _BearerTokenFileAuth(token_file)


def _check_connection(conn: ConnParams) -> None:
    url = conn.url_for(HEALTHZ_PATH)
    try:
        response = conn.session.get(url, timeout=conn.timeout)
    except requests.RequestException as exc:
        raise ConnectionError(f"connecting to {url!r}: {exc}") from exc
    try:
        if response.status_code != 200:
            raise ConnectionError(
                f"calling {url} got non-200 status code: {response.status_code}"
            )
    finally:
        _close(response)


class DefaultConnector:
    """Probes the kubelet on the node IP first and then through the API server proxy."""

    def __init__(
        self,
        config: ConnectorConfig,
        node_getter: Optional[NodeGetter] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.node_getter = node_getter
        self.logger = logger or logging.getLogger(__name__)

    def connect(self) -> ConnParams:
        """Return connection parameters for the first kubelet endpoint that answers."""
        try:
            port = self._port()
        except Exception as exc:
            raise ConnectionError(f"getting kubelet port: {exc}") from exc

        scheme = self._scheme_for(port)
        host = _join_host_port(self.config.node_ip, port)

        self.logger.info(
            "Trying to connect to kubelet locally with scheme=%r hostURL=%r", scheme, host
        )
        try:
            auth = _bearer_auth(self.config.bearer_token_file)
        except OSError as exc:
            raise ConnectionError(
                f"creating tripper connecting to kubelet through nodeIP: {exc}"
            ) from exc

        try:
            conn = self._check_local(auth, scheme, host)
        except ConnectionError as exc:
            self.logger.info(
                "Kubelet not reachable locally with scheme=%r hostURL=%r: %s", scheme, host, exc
            )
        else:
            self.logger.info(
                "Connected to Kubelet through nodeIP with scheme=%r hostURL=%r", scheme, host
            )
            return conn

        self.logger.info(
            "Trying to connect to kubelet through API proxy %r to node %r",
            self.config.api_server_host,
            self.config.node_name,
        )
        try:
            api_auth = _bearer_auth(self.config.bearer_token_file)
        except OSError as exc:
            raise ConnectionError(
                f"creating tripper connecting to kubelet through API server proxy: {exc}"
            ) from exc

        try:
            return self._check_api_proxy(api_auth)
        except ConnectionError as exc:
            raise ConnectionError(
                f"creating connection parameters for API proxy: {exc}"
            ) from exc

    def _port(self) -> int:
        if self.config.kubelet_port:
            self.logger.debug(
                "Setting Port %d as specified by user config", self.config.kubelet_port
            )
            return self.config.kubelet_port

        name = self.config.node_name
        if self.node_getter is None:
            raise LookupError(f"getting node {name!r}: no node getter configured")
        try:
            node = self.node_getter(name)
        except Exception as exc:
            raise LookupError(f"getting node {name!r}: {exc}") from exc

        status = node.get("status") or {}
        endpoints = status.get("daemonEndpoints") or {}
        kubelet = endpoints.get("kubeletEndpoint") or {}
        port = int(kubelet.get("Port") or 0)
        self.logger.debug("Setting Port %d as found in status condition", port)
        return port

    def _scheme_for(self, port: int) -> str:
        if self.config.kubelet_scheme:
            self.logger.debug(
                "Setting Kubelet Endpoint Scheme %s as specified by user config",
                self.config.kubelet_scheme,
            )
            return self.config.kubelet_scheme
        if port == DEFAULT_HTTP_KUBELET_PORT:
            return _HTTP
        if port == DEFAULT_HTTPS_KUBELET_PORT:
            return _HTTPS
        self.logger.info(
            "Cannot automatically figure out scheme from non-standard port %d, "
            "please set kubelet.scheme in the config file.",
            port,
        )
        return ""

    def _check_local(self, auth: Optional[AuthBase], scheme: str, host: str) -> ConnParams:
        self.logger.debug("connecting to kubelet directly with nodeIP")
        if scheme == _HTTP:
            attempts = [lambda: self._check_http(host)]
        elif scheme == _HTTPS:
            attempts = [lambda: self._check_https(host, auth)]
        else:
            self.logger.info(
                "Checking both HTTP and HTTPS since the scheme was not detected automatically, "
                "you can set kubelet.scheme to avoid this behaviour"
            )
            attempts = [lambda: self._check_https(host, auth), lambda: self._check_http(host)]

        last_error: Optional[ConnectionError] = None
        for attempt in attempts:
            try:
                return attempt()
            except ConnectionError as exc:
                last_error = exc
        raise ConnectionError(
            f"no connection succeeded through localhost: {last_error}"
        ) from last_error

    def _check_http(self, host: str) -> ConnParams:
        self.logger.debug("testing kubelet connection over plain http to %s", host)
        conn = ConnParams(
            url=urlunsplit((_HTTP, host, "", "", "")),
            session=requests.Session(),
            timeout=self.config.kubelet_timeout,
        )
        try:
            _check_connection(conn)
        except ConnectionError as exc:
            raise ConnectionError(f"checking connection via http: {exc}") from exc
        return conn

    def _check_https(self, host: str, auth: Optional[AuthBase]) -> ConnParams:
        self.logger.debug("testing kubelet connection over https to %s", host)
        session = requests.Session()
        session.verify = False
        session.auth = auth
        conn = ConnParams(
            url=urlunsplit((_HTTPS, host, "", "", "")),
            session=session,
            timeout=self.config.kubelet_timeout,
        )
        try:
            _check_connection(conn)
        except ConnectionError as exc:
            raise ConnectionError(f"checking connection via https: {exc}") from exc
        return conn

    def _check_api_proxy(self, auth: Optional[AuthBase]) -> ConnParams:
        api = urlsplit(self.config.api_server_host)
        session = requests.Session()
        session.auth = auth
        if self.config.api_ca_file:
            session.verify = self.config.api_ca_file
        elif self.config.api_insecure:
            session.verify = False

        path = _join_path(_API_PROXY_PATH.format(self.config.node_name))
        conn = ConnParams(
            url=urlunsplit((api.scheme, api.netloc, path, "", "")),
            session=session,
            timeout=self.config.kubelet_timeout,
        )
        self.logger.debug(
            "Testing kubelet connection through API proxy: %s%s", api.netloc, path
        )
        try:
            _check_connection(conn)
        except ConnectionError as exc:
            raise ConnectionError(f"checking connection via API proxy: {exc}") from exc
        return conn


class StaticConnector:
    """A connector returning fixed parameters without probing any endpoint."""

    def __init__(self, session: Any, url: str, timeout: Optional[float] = None):
        self.session = session
        self.url = url
        self.timeout = timeout

    def connect(self) -> ConnParams:
        """Return the configured parameters as they are."""
        return ConnParams(url=self.url, session=self.session, timeout=self.timeout)