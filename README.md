# resgate

Building blocks for a realtime API gateway that speaks the RES protocol.
The package covers the parts of such a gateway that need no network
connection:

- **Resource IDs** (`resgate.rid`): validating resource IDs and method names,
  and mapping between web paths such as `/api/test/model` and resource IDs
  such as `test.model`.
- **RES values** (`resgate.values`): decoding values found in models and
  collections (primitives, resource references, soft references, data values
  and delete actions), and the `ResError` exception used for protocol errors.
- **Protocol codec** (`resgate.codec`): building service requests and
  decoding service responses and events (get, access, call, query, change,
  add, remove, connection token, system reset and token reset).
- **Server settings** (`resgate.config`): `ServerConfig` with defaults and
  validation, and CORS origin matching.
- **Gateway settings** (`resgate.cli`): `GatewayConfig` and `load_config`,
  which read command-line style arguments together with a JSON file.
- **Logging** (`resgate.logger`): `StdLogger`, writing to standard error, and
  `MemLogger`, collecting entries in memory.

The package has no dependencies outside the standard library.

## Resource IDs

```python
from resgate.rid import is_valid_rid, is_valid_rid_part, path_to_rid, rid_to_path

is_valid_rid("test.model", True)        # True
is_valid_rid("test..model", True)       # False
is_valid_rid_part("method")             # True

path_to_rid("/api/test/model", "", "/api/")   # "test.model"
rid_to_path("test.model", "/api/")            # "/api/test/model"
```

`path_to_rid_action(path, query, prefix)` splits off the last path segment as
the call method and returns `(rid, action)`. Paths that do not map to a
resource give empty strings.

## Values and errors

`decode_value` turns the JSON text of a RES value into a `Value`. Its
`ValueType` tells primitives, references, soft references, data values and
delete actions apart, and `is_proper()` is true for all but delete actions.
Malformed JSON raises `ValueError`; JSON that is not a valid RES value raises
`ResError`. A `ResError` carries a `code`, a `message` and optional `data`,
and `to_dict()` gives its JSON form. `internal_error(err)` and
`res_error(err)` wrap other errors as `system.internalError`.

## Codec

```python
from resgate.codec import create_get_request, decode_get_response

create_get_request("")    # b"{}"
result = decode_get_response(b'{"result":{"model":{"foo":"bar"}}}')
result.model["foo"].raw   # '"bar"'
```

Response decoders raise `ResError` when the service replied with an error or
with an invalid response.

## Configuration

```python
from resgate.config import ServerConfig, matches_origins

cfg = ServerConfig()
cfg.set_default()
cfg.prepare()          # raises ValueError on invalid settings
cfg.net_addr           # "0.0.0.0:8080"

matches_origins(["http://localhost"], "http://Localhost")   # True
```

`resgate.cli.load_config(argv)` reads the gateway options (NATS URL, bind
address, port, paths, header authentication, allowed origins, HTTP method
mappings, throttles, TLS files, logging flags and so on; see `resgate.cli.USAGE`)
together with an optional JSON configuration file given by `-c`/`--config`,
and returns a `GatewayConfig`. Flags take precedence over the file. If the
named file does not exist, it is created holding the resulting settings.
Invalid arguments or an unreadable file raise `ValueError`; `-h` and `-v`
print help or version information and raise `SystemExit(0)`.
`GatewayConfig.to_json()` and `GatewayConfig.from_json()` convert to and from
the file format.

## What the package does not do

There is no running gateway here: no HTTP or WebSocket server, no NATS
messaging client, no resource cache or subscription handling, no encoding of
web resource responses, and no command to start a service. The package
provides the settings, codec and helpers such a gateway would use.