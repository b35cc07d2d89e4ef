import json

import pytest

from resgate.cli import (
    DEFAULT_NATS_URL,
    DEFAULT_REQUEST_TIMEOUT,
    USAGE,
    GatewayConfig,
    load_config,
)
from resgate.config import VERSION, ServerConfig


def _keys_in_order(text):
    pairs = json.loads(text, object_pairs_hook=lambda p: p)
    return [key for key, _ in pairs]


def test_set_default_fills_values():
    cfg = GatewayConfig()
    cfg.set_default()
    assert cfg.nats_url == "nats://127.0.0.1:4222"
    assert cfg.request_timeout == 3000
    assert cfg.buffer_size == 8192
    assert cfg.nats_root_cas == []
    assert cfg.server.addr == "0.0.0.0"
    assert cfg.server.port == 8080
    assert cfg.server.api_path == "/api"
    assert cfg.server.api_encoding == "json"
    assert cfg.server.allow_origin == "*"


def test_set_default_keeps_set_values():
    cfg = GatewayConfig(nats_url="nats://localhost:1234", request_timeout=500, buffer_size=16)
    cfg.server.port = 9000
    cfg.set_default()
    assert cfg.nats_url == "nats://localhost:1234"
    assert cfg.request_timeout == 500
    assert cfg.buffer_size == 16
    assert cfg.server.port == 9000


def test_json_round_trip():
    cfg = GatewayConfig(nats_root_cas=["a.pem", "b.pem"], debug=True)
    cfg.server.header_auth = "auth.method"
    cfg.server.put_method = "set"
    cfg.set_default()
    again = GatewayConfig.from_json(cfg.to_json())
    assert again == cfg


def test_to_json_key_order():
    cfg = GatewayConfig()
    cfg.set_default()
    assert _keys_in_order(cfg.to_json()) == [
        "natsUrl", "natsCreds", "natsCert", "natsKey", "natsRootCAs",
        "requestTimeout", "bufferSize", "debug", "trace",
        "addr", "port", "wsPath", "apiPath", "apiEncoding", "headerAuth",
        "allowOrigin", "putMethod", "deleteMethod", "patchMethod",
        "tls", "certFile", "keyFile", "wsCompression",
        "resetThrottle", "referenceThrottle",
    ]


def test_to_json_is_tab_indented():
    cfg = GatewayConfig()
    cfg.set_default()
    lines = cfg.to_json().splitlines()
    assert lines[0] == "{"
    assert lines[1] == '\t"natsUrl": "nats://127.0.0.1:4222",'


def test_from_json_matches_keys_case_insensitively():
    cfg = GatewayConfig.from_json('{"NATSURL":"nats://localhost:4222","WsPath":"/ws"}')
    assert cfg.nats_url == "nats://localhost:4222"
    assert cfg.server.ws_path == "/ws"


def test_from_json_ignores_unknown_keys():
    cfg = GatewayConfig.from_json('{"unknown":1,"debug":true}')
    assert cfg.debug is True
    assert cfg == GatewayConfig(debug=True)


def test_from_json_null_handling():
    cfg = GatewayConfig(nats_url="nats://localhost:4222")
    cfg.server.addr = "127.0.0.1"
    cfg._update_from_json('{"natsUrl":null,"addr":null}')
    assert cfg.nats_url == "nats://localhost:4222"
    assert cfg.server.addr is None


@pytest.mark.parametrize(
    "doc",
    [
        '{"natsUrl":42}',
        '{"port":70000}',
        '{"port":-1}',
        '{"requestTimeout":1.5}',
        '{"debug":"yes"}',
        '{"natsRootCAs":"a.pem"}',
        '[1,2]',
        '{broken',
    ],
)
def test_from_json_rejects_invalid(doc):
    with pytest.raises(ValueError):
        GatewayConfig.from_json(doc)


def test_load_config_defaults():
    cfg = load_config([])
    expected = GatewayConfig()
    expected.set_default()
    assert cfg == expected
    assert cfg.nats_url == DEFAULT_NATS_URL
    assert cfg.request_timeout == DEFAULT_REQUEST_TIMEOUT


def test_load_config_flags():
    cfg = load_config([
        "-n", "nats://localhost:4222",
        "--port=9000",
        "-u", "auth.method",
        "--alloworigin", "http://a.example.com",
        "--alloworigin", "http://b.example.com",
        "--natsrootca", "one.pem",
        "--natsrootca", "two.pem",
        "-r", "500",
        "--wscompression",
        "-DV",
    ])
    assert cfg.nats_url == "nats://localhost:4222"
    assert cfg.server.port == 9000
    assert cfg.server.header_auth == "auth.method"
    assert cfg.server.allow_origin == "http://a.example.com;http://b.example.com"
    assert cfg.nats_root_cas == ["one.pem", "two.pem"]
    assert cfg.request_timeout == 500
    assert cfg.server.ws_compression is True
    assert cfg.debug is True
    assert cfg.trace is True


def test_load_config_empty_addr_is_kept():
    cfg = load_config(["-i", ""])
    assert cfg.server.addr == ""


def test_load_config_empty_method_is_unset():
    cfg = load_config(["--putmethod", "", "--deletemethod", "remove"])
    assert cfg.server.put_method is None
    assert cfg.server.delete_method == "remove"


def test_load_config_stops_at_non_flag():
    cfg = load_config(["-D", "extra", "-V"])
    assert cfg.debug is True
    assert cfg.trace is False


def test_load_config_double_dash_terminates():
    cfg = load_config(["--trace", "--", "--debug"])
    assert cfg.trace is True
    assert cfg.debug is False


def test_load_config_bool_with_value():
    cfg = load_config(["--debug=false", "--trace=1"])
    assert cfg.debug is False
    assert cfg.trace is True


@pytest.mark.parametrize(
    "args",
    [
        ["-p", "65536"],
        ["--unknown"],
        ["-n"],
        ["--debug=maybe"],
        ["-p", "abc"],
        ["-p", "-1"],
        ["---x"],
    ],
)
def test_load_config_invalid_arguments(args):
    with pytest.raises(ValueError):
        load_config(args)


def test_load_config_port_error_message():
    with pytest.raises(ValueError, match="must be less than 65536"):
        load_config(["--port", "70000"])


def test_load_config_help(capsys):
    with pytest.raises(SystemExit) as exc:
        load_config(["-h"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert out == USAGE + "\n"
    assert "Usage: resgate [options]" in out


def test_load_config_version(capsys):
    with pytest.raises(SystemExit) as exc:
        load_config(["--version"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert f"resgate  v{VERSION}" in out


def test_load_config_writes_missing_file(tmp_path):
    path = tmp_path / "config.json"
    cfg = load_config(["-c", str(path), "-p", "9001"])
    assert path.exists()
    written = GatewayConfig.from_json(path.read_text())
    assert written == cfg
    assert written.server.port == 9001


def test_load_config_reads_file_and_flags_override(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"natsUrl":"nats://10.0.0.1:4222","port":7000,"debug":true}')
    from_file = load_config(["--config", str(path)])
    assert from_file.nats_url == "nats://10.0.0.1:4222"
    assert from_file.server.port == 7000
    assert from_file.debug is True

    overridden = load_config(["-c", str(path), "-p", "9000", "-n", "nats://localhost:4222"])
    assert overridden.server.port == 9000
    assert overridden.nats_url == "nats://localhost:4222"
    assert path.read_text() == '{"natsUrl":"nats://10.0.0.1:4222","port":7000,"debug":true}'


def test_load_config_bad_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ValueError, match="Error parsing config file"):
        load_config(["-c", str(path)])


def test_load_config_directory_as_file(tmp_path):
    with pytest.raises(ValueError, match="Error loading config file"):
        load_config(["-c", str(tmp_path)])


def test_loaded_config_prepares():
    cfg = load_config([])
    server = cfg.server
    assert isinstance(server, ServerConfig)
    server.prepare()
    assert server.net_addr == "0.0.0.0:8080"
    assert server.api_path == "/api/"
    assert server.allow_methods == "GET, HEAD, OPTIONS, POST"