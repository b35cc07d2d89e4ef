import pytest

from resgate.config import (
    ServerConfig,
    matches_origins,
    to_lower_ascii,
    validate_allow_origin,
)

BASE_METHODS = "GET, HEAD, OPTIONS, POST"


def _expected(**kw):
    exp = {
        "addr": None,
        "port": 80,
        "ws_path": "/",
        "api_path": "/",
        "api_encoding": "",
        "scheme": "http",
        "net_addr": "0.0.0.0:80",
        "allow_origins": ["*"],
        "allow_methods": BASE_METHODS,
        "put_method": None,
        "delete_method": None,
        "patch_method": None,
        "header_auth": None,
        "header_auth_rid": "",
        "header_auth_action": "",
    }
    exp.update(kw)
    return exp


VALID_CASES = [
    (
        {},
        True,
        _expected(
            addr="0.0.0.0",
            port=8080,
            api_path="/api/",
            api_encoding="json",
            net_addr="0.0.0.0:8080",
        ),
    ),
    ({"ws_path": "/"}, False, _expected()),
    ({"addr": "", "ws_path": "/"}, False, _expected(addr="", net_addr=":80")),
    (
        {"addr": "127.0.0.1", "ws_path": "/"},
        False,
        _expected(addr="127.0.0.1", net_addr="127.0.0.1:80"),
    ),
    ({"addr": "::1", "ws_path": "/"}, False, _expected(addr="::1", net_addr="[::1]:80")),
    ({"allow_origin": "*", "ws_path": "/"}, False, _expected()),
    (
        {"allow_origin": "http://resgate.io", "ws_path": "/"},
        False,
        _expected(allow_origins=["http://resgate.io"]),
    ),
    (
        {"allow_origin": "http://localhost;http://resgate.io", "ws_path": "/"},
        False,
        _expected(allow_origins=["http://localhost", "http://resgate.io"]),
    ),
    (
        {"ws_path": "/", "put_method": "foo"},
        False,
        _expected(put_method="foo", allow_methods="GET, HEAD, OPTIONS, POST, PUT"),
    ),
    (
        {"ws_path": "/", "delete_method": "foo"},
        False,
        _expected(delete_method="foo", allow_methods="GET, HEAD, OPTIONS, POST, DELETE"),
    ),
    (
        {"ws_path": "/", "patch_method": "foo"},
        False,
        _expected(patch_method="foo", allow_methods="GET, HEAD, OPTIONS, POST, PATCH"),
    ),
    (
        {"ws_path": "/", "put_method": "foo", "delete_method": "foo", "patch_method": "foo"},
        False,
        _expected(
            put_method="foo",
            delete_method="foo",
            patch_method="foo",
            allow_methods="GET, HEAD, OPTIONS, POST, PUT, DELETE, PATCH",
        ),
    ),
]


@pytest.mark.parametrize("kwargs,with_defaults,expected", VALID_CASES)
def test_config_prepare(kwargs, with_defaults, expected):
    cfg = ServerConfig(**kwargs)
    if with_defaults:
        cfg.set_default()
    cfg.prepare()
    for name, value in expected.items():
        assert getattr(cfg, name) == value, name


@pytest.mark.parametrize(
    "kwargs",
    [
        {"addr": "127.0.0", "ws_path": "/"},
        {"header_auth": "test", "ws_path": "/"},
        {"allow_origin": "", "ws_path": "/"},
        {"allow_origin": ";http://localhost", "ws_path": "/"},
        {"allow_origin": "http://localhost;*", "ws_path": "/"},
        {"allow_origin": "http://this.is/invalid", "ws_path": "/"},
        {"put_method": "foo.bar", "ws_path": "/"},
        {"delete_method": "foo.bar", "ws_path": "/"},
        {"patch_method": "foo.bar", "ws_path": "/"},
    ],
)
def test_config_prepare_errors(kwargs):
    cfg = ServerConfig(**kwargs)
    with pytest.raises(ValueError):
        cfg.prepare()


def test_invalid_addr_message():
    with pytest.raises(ValueError, match=r"invalid addr setting \(127\.0\.0\)"):
        ServerConfig(addr="127.0.0").prepare()


def test_header_auth_split():
    cfg = ServerConfig(header_auth="vault.method")
    cfg.prepare()
    assert cfg.header_auth_rid == "vault"
    assert cfg.header_auth_action == "method"


def test_tls_defaults_to_https_port():
    cfg = ServerConfig(tls=True)
    cfg.prepare()
    assert cfg.scheme == "https"
    assert cfg.port == 443
    assert cfg.net_addr == "0.0.0.0:443"


def test_api_path_gets_trailing_slash():
    cfg = ServerConfig(api_path="/api")
    cfg.prepare()
    assert cfg.api_path == "/api/"
    cfg.prepare()
    assert cfg.api_path == "/api/"


def test_validate_allow_origin_lowercases():
    assert validate_allow_origin(["HTTP://Localhost"]) == ["http://localhost"]


def test_validate_allow_origin_star_alone():
    assert validate_allow_origin(["*"]) == ["*"]
    with pytest.raises(ValueError, match="must not be used together"):
        validate_allow_origin(["*", "http://localhost"])


def test_to_lower_ascii_only_touches_a_to_z():
    assert to_lower_ascii("HTTP://Resgate.IO") == "http://resgate.io"
    assert to_lower_ascii("ÅÄÖ") == "ÅÄÖ"


@pytest.mark.parametrize(
    "allowed,origin,expected",
    [
        (["http://localhost"], "http://localhost", True),
        (["https://resgate.io"], "https://resgate.io", True),
        (["https://resgate.io"], "https://Resgate.IO", True),
        (["http://localhost", "https://resgate.io"], "http://localhost", True),
        (["http://localhost", "https://resgate.io"], "https://resgate.io", True),
        (["http://localhost", "https://resgate.io"], "https://Resgate.IO", True),
        (["http://localhost", "https://resgate.io", "http://resgate.io"], "http://Localhost", True),
        (["http://localhost", "https://resgate.io", "http://resgate.io"], "https://Resgate.io", True),
        (["http://localhost", "https://resgate.io", "http://resgate.io"], "http://resgate.IO", True),
        (["https://resgate.io"], "http://resgate.io", False),
        (["http://localhost", "https://resgate.io"], "http://resgate.io", False),
        (["http://localhost", "https://resgate.io", "http://resgate.io"], "http://localhost/", False),
    ],
)
def test_matches_origins(allowed, origin, expected):
    assert matches_origins(allowed, origin) is expected