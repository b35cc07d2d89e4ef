"""Server settings, their defaults and their validation."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlsplit

from .rid import is_valid_rid, is_valid_rid_part

__all__ = [
    "VERSION",
    "PROTOCOL_VERSION",
    "DEFAULT_ADDR",
    "DEFAULT_PORT",
    "DEFAULT_WS_PATH",
    "DEFAULT_API_PATH",
    "DEFAULT_API_ENCODING",
    "WS_TIMEOUT",
    "MQ_TIMEOUT",
    "WS_CONN_WORKER_QUEUE_SIZE",
    "CID_PLACEHOLDER",
    "SUBSCRIPTION_COUNT_LIMIT",
    "CACHE_WORKERS",
    "UNSUBSCRIBE_DELAY",
    "ServerConfig",
    "validate_allow_origin",
    "matches_origins",
    "to_lower_ascii",
]

VERSION = "1.7.5"
PROTOCOL_VERSION = "1.2.2"
DEFAULT_ADDR = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_WS_PATH = "/"
DEFAULT_API_PATH = "/api"
DEFAULT_API_ENCODING = "json"
WS_TIMEOUT = 3.0
MQ_TIMEOUT = 3.0
WS_CONN_WORKER_QUEUE_SIZE = 256
CID_PLACEHOLDER = "{cid}"
SUBSCRIPTION_COUNT_LIMIT = 256
CACHE_WORKERS = 10
UNSUBSCRIBE_DELAY = 5.0

_BASE_METHODS = "GET, HEAD, OPTIONS, POST"
_NETLOC = re.compile(r"(\[[^\]]*\]|[^:\[\]]*)(:\d*)?")


def to_lower_ascii(s: str) -> str:
    """Lower case only the letters A-Z."""
    return "".join(chr(ord(c) + 32) if "A" <= c <= "Z" else c for c in s)


def _is_origin_url(o: str) -> bool:
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in o):
        return False
    try:
        parts = urlsplit(o)
    except ValueError:
        return False
    if not parts.scheme or not parts.netloc:
        return False
    if "@" in parts.netloc or not _NETLOC.fullmatch(parts.netloc):
        return False
    if parts.path or parts.fragment:
        return False
    if parse_qsl(parts.query, keep_blank_values=True):
        return False
    return True


def validate_allow_origin(origins: list[str]) -> list[str]:
    """Return the origins lower cased, raising ValueError if any is invalid."""
    result = []
    for raw in origins:
        o = to_lower_ascii(raw)
        if o == "*":
            if len(origins) > 1:
                raise ValueError(f"'{o}' must not be used together with other origin settings")
        elif o == "":
            raise ValueError("origin must not be empty")
        elif not _is_origin_url(o):
            raise ValueError(f"'{o}' doesn't match <scheme>://<hostname>[:<port>]")
        result.append(o)
    return result


def matches_origins(allowed: list[str], origin: str) -> bool:
    """Return True if origin matches one of the lower cased allowed origins."""
    for s in allowed:
        if len(s) != len(origin):
            continue
        if all(a == b or a == to_lower_ascii(b) for a, b in zip(s, origin)):
            return True
    return False


def _resolve_host(s: str) -> str:
    if "%" in s:
        raise ValueError(s)
    ip = ipaddress.ip_address(s)
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is not None:
            return str(ip.ipv4_mapped)
        return f"[{ip}]"
    return str(ip)


@dataclass
class ServerConfig:
    """Settings of the HTTP and WebSocket server."""

    addr: str | None = None
    port: int = 0
    ws_path: str = ""
    api_path: str = ""
    api_encoding: str = ""
    header_auth: str | None = None
    allow_origin: str | None = None
    put_method: str | None = None
    delete_method: str | None = None
    patch_method: str | None = None
    tls: bool = False
    tls_cert: str = ""
    tls_key: str = ""
    ws_compression: bool = False
    reset_throttle: int = 0
    reference_throttle: int = 0
    no_http: bool = False

    scheme: str = field(default="", init=False)
    net_addr: str = field(default="", init=False)
    header_auth_rid: str = field(default="", init=False)
    header_auth_action: str = field(default="", init=False)
    allow_origins: list[str] = field(default_factory=list, init=False)
    allow_methods: str = field(default="", init=False)

    def set_default(self) -> None:
        """Fill in default values for unset settings."""
        if self.addr is None:
            self.addr = DEFAULT_ADDR
        if self.port == 0:
            self.port = DEFAULT_PORT
        if self.ws_path == "":
            self.ws_path = DEFAULT_WS_PATH
        if self.api_path == "":
            self.api_path = DEFAULT_API_PATH
        if self.api_encoding == "":
            self.api_encoding = DEFAULT_API_ENCODING
        if self.allow_origin is None:
            self.allow_origin = "*"

    def prepare(self) -> None:
        """Validate the settings and compute the derived values.

        Raises ValueError on an invalid setting.
        """
        if not 0 <= self.port < 1 << 16:
            raise ValueError(f"invalid port setting ({self.port})\n\tmust be less than 65536")

        if self.tls:
            self.scheme = "https"
            if self.port == 0:
                self.port = 443
        else:
            self.scheme = "http"
            if self.port == 0:
                self.port = 80

        if self.addr is None:
            host = DEFAULT_ADDR
        elif self.addr == "":
            host = ""
        else:
            try:
                host = _resolve_host(self.addr)
            except ValueError:
                raise ValueError(
                    f"invalid addr setting ({self.addr})\n\tmust be a valid IPv4 or IPv6 address"
                ) from None
        self.net_addr = f"{host}:{self.port}"

        if self.header_auth is not None:
            s = self.header_auth
            idx = s.rfind(".")
            if not (is_valid_rid(s, False) and idx >= 0):
                raise ValueError(
                    f"invalid headerAuth setting ({s})\n\tmust be a valid resource method"
                )
            self.header_auth_rid = s[:idx]
            self.header_auth_action = s[idx + 1:]

        if self.allow_origin is not None:
            try:
                origins = validate_allow_origin(self.allow_origin.split(";"))
            except ValueError as err:
                raise ValueError(
                    f"invalid allowOrigin setting ({self.allow_origin})\n\t{err}"
                    "\n\tvalid options are *, or a list of semi-colon separated origins"
                ) from None
            self.allow_origins = sorted(origins)
        else:
            self.allow_origins = ["*"]

        methods = _BASE_METHODS
        for setting, name, verb in (
            (self.put_method, "putMethod", "PUT"),
            (self.delete_method, "deleteMethod", "DELETE"),
            (self.patch_method, "patchMethod", "PATCH"),
        ):
            if setting is None:
                continue
            if not is_valid_rid_part(setting):
                raise ValueError(
                    f"invalid {name} setting ({setting})\n\tmust be a valid call method name"
                )
            methods += ", " + verb
        self.allow_methods = methods

        if self.ws_path == "":
            self.ws_path = "/"
        if not self.api_path.endswith("/"):
            self.api_path += "/"