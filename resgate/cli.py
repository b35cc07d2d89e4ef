"""Command line and configuration file handling for the gateway."""

from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .config import PROTOCOL_VERSION, VERSION, ServerConfig

__all__ = [
    "STOP_TIMEOUT",
    "DEFAULT_NATS_URL",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_BUFFER_SIZE",
    "USAGE",
    "GatewayConfig",
    "load_config",
]

STOP_TIMEOUT = 10.0
DEFAULT_NATS_URL = "nats://127.0.0.1:4222"
DEFAULT_REQUEST_TIMEOUT = 3000
DEFAULT_BUFFER_SIZE = 8192

USAGE = """
Usage: resgate [options]

Server Options:
    -n, --nats <url>                 NATS Server URL (default: nats://127.0.0.1:4222)
    -i, --addr <host>                Bind to HOST address (default: 0.0.0.0)
    -p, --port <port>                HTTP port for client connections (default: 8080)
    -w, --wspath <path>              WebSocket path for clients (default: /)
    -a, --apipath <path>             Web resource path for clients (default: /api/)
    -r, --reqtimeout <milliseconds>  Timeout duration for NATS requests (default: 3000)
    -u, --headauth <method>          Resource method for header authentication
        --apiencoding <type>         Encoding for web resources: json, jsonflat (default: json)
        --putmethod <methodName>     Call method name mapped to HTTP PUT requests
        --deletemethod <methodName>  Call method name mapped to HTTP DELETE requests
        --patchmethod <methodName>   Call method name mapped to HTTP PATCH requests
        --wscompression              Enable WebSocket per message compression
        --resetthrottle <limit>      Limit on parallel requests sent in response to a system reset
        --referencethrottle <limit>  Limit on parallel requests sent when following resource references
    -c, --config <file>              Configuration file

Security Options:
        --tls                        Enable TLS for HTTP (default: false)
        --tlscert <file>             HTTP server certificate file
        --tlskey <file>              Private key for HTTP server certificate
        --creds <file>               NATS User Credentials file
        --natscert <file>            NATS Client certificate file
        --natskey <file>             NATS Client certificate key file
        --natsrootca <file>          NATS Root CA file(s)
        --alloworigin <origin>       Allowed origin(s): *, or <scheme>://<hostname>[:<port>] (default: *)

Logging Options:
    -D, --debug                      Enable debugging output
    -V, --trace                      Enable trace logging
    -DV                              Debug and trace

Common Options:
    -h, --help                       Show this message
    -v, --version                    Show version
"""

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1


# JSON configuration file


class _Pairs(list):
    """Members of a JSON object, in document order."""


def _json_kind(value: Any) -> str:
    if isinstance(value, _Pairs):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "bool"
    if value is None:
        return "null"
    return "number"


def _type_error(key: str, value: Any, typ: str) -> ValueError:
    return ValueError(f"cannot decode {_json_kind(value)} into field {key!r} of type {typ}")


def _dec_str(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return current
    if not isinstance(value, str):
        raise _type_error(key, value, "string")
    return value


def _dec_opt_str(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _type_error(key, value, "string")
    return value


def _dec_bool(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return current
    if not isinstance(value, bool):
        raise _type_error(key, value, "bool")
    return value


def _dec_int(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return current
    if isinstance(value, bool) or not isinstance(value, int):
        raise _type_error(key, value, "int")
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"number {value} overflows field {key!r} of type int")
    return value


def _dec_uint16(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return current
    if isinstance(value, bool) or not isinstance(value, int):
        raise _type_error(key, value, "uint16")
    if not 0 <= value < 1 << 16:
        raise ValueError(f"number {value} overflows field {key!r} of type uint16")
    return value


def _dec_str_list(key: str, current: Any, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, _Pairs) or not isinstance(value, list):
        raise _type_error(key, value, "[]string")
    items = []
    for item in value:
        if item is None:
            items.append("")
        elif isinstance(item, str):
            items.append(item)
        else:
            raise _type_error(key, item, "string")
    return items


# JSON key, owner ("" for the gateway settings, "server" for the server), attribute, decoder
_JSON_FIELDS = (
    ("natsUrl", "", "nats_url", _dec_str),
    ("natsCreds", "", "nats_creds", _dec_str),
    ("natsCert", "", "nats_tls_cert", _dec_str),
    ("natsKey", "", "nats_tls_key", _dec_str),
    ("natsRootCAs", "", "nats_root_cas", _dec_str_list),
    ("requestTimeout", "", "request_timeout", _dec_int),
    ("bufferSize", "", "buffer_size", _dec_int),
    ("debug", "", "debug", _dec_bool),
    ("trace", "", "trace", _dec_bool),
    ("addr", "server", "addr", _dec_opt_str),
    ("port", "server", "port", _dec_uint16),
    ("wsPath", "server", "ws_path", _dec_str),
    ("apiPath", "server", "api_path", _dec_str),
    ("apiEncoding", "server", "api_encoding", _dec_str),
    ("headerAuth", "server", "header_auth", _dec_opt_str),
    ("allowOrigin", "server", "allow_origin", _dec_opt_str),
    ("putMethod", "server", "put_method", _dec_opt_str),
    ("deleteMethod", "server", "delete_method", _dec_opt_str),
    ("patchMethod", "server", "patch_method", _dec_opt_str),
    ("tls", "server", "tls", _dec_bool),
    ("certFile", "server", "tls_cert", _dec_str),
    ("keyFile", "server", "tls_key", _dec_str),
    ("wsCompression", "server", "ws_compression", _dec_bool),
    ("resetThrottle", "server", "reset_throttle", _dec_int),
    ("referenceThrottle", "server", "reference_throttle", _dec_int),
)
_FIELDS_BY_KEY = {spec[0]: spec for spec in _JSON_FIELDS}
_FIELDS_BY_FOLDED_KEY = {spec[0].lower(): spec for spec in _JSON_FIELDS}

_HTML_ESCAPES = str.maketrans(
    {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}
)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name}")


@dataclass
class GatewayConfig:
    """Complete gateway settings: messaging client, logging and server."""

    nats_url: str = ""
    nats_creds: str = ""
    nats_tls_cert: str = ""
    nats_tls_key: str = ""
    nats_root_cas: list[str] | None = None
    request_timeout: int = 0
    buffer_size: int = 0
    debug: bool = False
    trace: bool = False
    server: ServerConfig = field(default_factory=ServerConfig)

    def set_default(self) -> None:
        """Fill in default values for unset settings."""
        if self.nats_url == "":
            self.nats_url = DEFAULT_NATS_URL
        if self.request_timeout == 0:
            self.request_timeout = DEFAULT_REQUEST_TIMEOUT
        if self.nats_root_cas is None:
            self.nats_root_cas = []
        if self.buffer_size == 0:
            self.buffer_size = DEFAULT_BUFFER_SIZE
        self.server.set_default()

    def _owner(self, name: str) -> Any:
        return self.server if name == "server" else self

    def to_json(self) -> str:
        """Return the settings as a tab indented JSON document."""
        data: dict[str, Any] = {}
        for key, owner, attr, _ in _JSON_FIELDS:
            value = getattr(self._owner(owner), attr)
            data[key] = list(value) if isinstance(value, list) else value
        return json.dumps(data, indent="\t", ensure_ascii=False).translate(_HTML_ESCAPES)

    @classmethod
    def from_json(cls, text: str | bytes) -> GatewayConfig:
        """Create settings from a JSON document, raising ValueError if it is invalid."""
        cfg = cls()
        cfg._update_from_json(text)
        return cfg

    def _update_from_json(self, text: str | bytes) -> None:
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("utf-8", errors="replace")
        doc = json.loads(text, object_pairs_hook=_Pairs, parse_constant=_reject_constant)
        if doc is None:
            return
        if not isinstance(doc, _Pairs):
            raise ValueError(f"cannot decode {_json_kind(doc)} into the configuration object")
        for key, value in doc:
            spec = _FIELDS_BY_KEY.get(key) or _FIELDS_BY_FOLDED_KEY.get(key.lower())
            if spec is None:
                continue
            json_key, owner_name, attr, decode = spec
            owner = self._owner(owner_name)
            setattr(owner, attr, decode(json_key, getattr(owner, attr), value))


# Command line flags


class _FlagError(Exception):
    pass


@dataclass
class _Options:
    show_help: bool = False
    show_version: bool = False
    config_file: str = ""
    port: int = 0
    headauth: str = ""
    addr: str = ""
    nats_root_cas: list[str] = field(default_factory=list)
    debug_trace: bool = False
    allow_origin: list[str] = field(default_factory=list)
    put_method: str = ""
    delete_method: str = ""
    patch_method: str = ""


# Flag name: (kind, owner, attribute)
_FLAGS: dict[str, tuple[str, str, str]] = {
    "h": ("bool", "opts", "show_help"),
    "help": ("bool", "opts", "show_help"),
    "c": ("string", "opts", "config_file"),
    "config": ("string", "opts", "config_file"),
    "n": ("string", "cfg", "nats_url"),
    "nats": ("string", "cfg", "nats_url"),
    "i": ("string", "opts", "addr"),
    "addr": ("string", "opts", "addr"),
    "p": ("uint", "opts", "port"),
    "port": ("uint", "opts", "port"),
    "w": ("string", "server", "ws_path"),
    "wspath": ("string", "server", "ws_path"),
    "a": ("string", "server", "api_path"),
    "apipath": ("string", "server", "api_path"),
    "u": ("string", "opts", "headauth"),
    "headauth": ("string", "opts", "headauth"),
    "tls": ("bool", "server", "tls"),
    "tlscert": ("string", "server", "tls_cert"),
    "tlskey": ("string", "server", "tls_key"),
    "apiencoding": ("string", "server", "api_encoding"),
    "r": ("int", "cfg", "request_timeout"),
    "reqtimeout": ("int", "cfg", "request_timeout"),
    "creds": ("string", "cfg", "nats_creds"),
    "natscert": ("string", "cfg", "nats_tls_cert"),
    "natskey": ("string", "cfg", "nats_tls_key"),
    "natsrootca": ("list", "opts", "nats_root_cas"),
    "alloworigin": ("list", "opts", "allow_origin"),
    "putmethod": ("string", "opts", "put_method"),
    "deletemethod": ("string", "opts", "delete_method"),
    "patchmethod": ("string", "opts", "patch_method"),
    "wscompression": ("bool", "server", "ws_compression"),
    "resetthrottle": ("int", "server", "reset_throttle"),
    "referencethrottle": ("int", "server", "reference_throttle"),
    "D": ("bool", "cfg", "debug"),
    "debug": ("bool", "cfg", "debug"),
    "V": ("bool", "cfg", "trace"),
    "trace": ("bool", "cfg", "trace"),
    "DV": ("bool", "opts", "debug_trace"),
    "version": ("bool", "opts", "show_version"),
    "v": ("bool", "opts", "show_version"),
}

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}
_PREFIXED = re.compile(r"0([xXbBoO])(.*)")


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError("parse error")


def _parse_integer(value: str, signed: bool) -> int:
    body = value
    negative = False
    if signed and body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    match = _PREFIXED.fullmatch(body)
    try:
        if match:
            base = {"x": 16, "b": 2, "o": 8}[match.group(1).lower()]
            number = int(match.group(2), base)
        elif len(body) > 1 and body[0] == "0":
            number = int(body[1:], 8)
        else:
            if "_" in body:
                raise ValueError
            number = int(body, 10)
    except ValueError:
        raise ValueError("parse error") from None
    if not body or not body[0].isdigit():
        raise ValueError("parse error")
    if negative:
        number = -number
    low, high = (_INT64_MIN, _INT64_MAX) if signed else (0, _UINT64_MAX)
    if not low <= number <= high:
        raise ValueError("value out of range")
    return number


def _parse_flags(
    args: Sequence[str], cfg: GatewayConfig, opts: _Options, seen: set[str]
) -> None:
    owners = {"cfg": cfg, "server": cfg.server, "opts": opts}
    remaining = list(args)
    while remaining:
        arg = remaining[0]
        if len(arg) < 2 or arg[0] != "-":
            return
        dashes = 1
        if arg[1] == "-":
            dashes = 2
            if len(arg) == 2:
                return
        name = arg[dashes:]
        if not name or name[0] in "-=":
            raise _FlagError(f"bad flag syntax: {arg}")
        remaining.pop(0)

        has_value = "=" in name
        value = ""
        if has_value:
            name, value = name.split("=", 1)
        spec = _FLAGS.get(name)
        if spec is None:
            raise _FlagError(f"flag provided but not defined: -{name}")
        kind, owner_name, attr = spec
        owner = owners[owner_name]

        if kind == "bool":
            if has_value:
                try:
                    parsed: Any = _parse_bool(value)
                except ValueError as err:
                    raise _FlagError(f"invalid boolean value {value!r} for -{name}: {err}") from None
            else:
                parsed = True
            setattr(owner, attr, parsed)
        else:
            if not has_value:
                if not remaining:
                    raise _FlagError(f"flag needs an argument: -{name}")
                value = remaining.pop(0)
            try:
                if kind == "string":
                    setattr(owner, attr, value)
                elif kind == "list":
                    getattr(owner, attr).append(value)
                else:
                    setattr(owner, attr, _parse_integer(value, signed=kind == "int"))
            except ValueError as err:
                raise _FlagError(f"invalid value {value!r} for flag -{name}: {err}") from None
        seen.add(name)


def _apply_visited(cfg: GatewayConfig, opts: _Options, seen: set[str]) -> None:
    server = cfg.server
    for name in sorted(seen):
        if name in ("u", "headauth"):
            server.header_auth = opts.headauth or None
        elif name == "natsrootca":
            cfg.nats_root_cas = list(opts.nats_root_cas)
        elif name == "alloworigin":
            server.allow_origin = ";".join(opts.allow_origin)
        elif name == "putmethod":
            server.put_method = opts.put_method or None
        elif name == "deletemethod":
            server.delete_method = opts.delete_method or None
        elif name == "patchmethod":
            server.patch_method = opts.patch_method or None
        elif name in ("i", "addr"):
            server.addr = opts.addr
        elif name == "DV":
            cfg.debug = True
            cfg.trace = True


def _write_config(path: str, cfg: GatewayConfig) -> None:
    data = cfg.to_json().encode("utf-8")
    # A config file that cannot be written does not stop the gateway.
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o664)
        with os.fdopen(fd, "wb") as out:
            out.write(data)
    except OSError:
        pass


def load_config(argv: Sequence[str] | None = None) -> GatewayConfig:
    """Build the gateway settings from command line arguments and a config file.

    Flags override values read from the config file. A named config file
    that does not exist is created with the resulting settings. Prints help
    or version information and raises SystemExit(0) when asked for them.
    Raises ValueError on invalid arguments or an unreadable config file.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    cfg = GatewayConfig()
    opts = _Options()
    seen: set[str] = set()

    try:
        _parse_flags(args, cfg, opts, seen)
    except _FlagError as err:
        raise ValueError(f"Error parsing command arguments: {err}") from None

    if opts.port >= 1 << 16:
        raise ValueError(f'Invalid port "{opts.port}": must be less than 65536')

    if opts.show_help:
        print(USAGE)
        raise SystemExit(0)

    if opts.show_version:
        print(f"resgate  v{VERSION}\nprotocol v{PROTOCOL_VERSION}")
        raise SystemExit(0)

    write_config = False
    if opts.config_file:
        try:
            content = Path(opts.config_file).read_bytes()
        except FileNotFoundError:
            cfg.set_default()
            write_config = True
        except OSError as err:
            raise ValueError(f"Error loading config file: {err}") from None
        else:
            try:
                cfg._update_from_json(content)
            except ValueError as err:
                raise ValueError(f"Error parsing config file: {err}") from None
            # Command line options take precedence over the file
            _parse_flags(args, cfg, opts, seen)

    if opts.port > 0:
        cfg.server.port = opts.port

    _apply_visited(cfg, opts, seen)
    cfg.set_default()

    if write_config:
        _write_config(opts.config_file, cfg)

    return cfg