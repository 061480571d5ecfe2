# hypermcp

An MCP (Model Context Protocol) server whose tools come from plugins. Each
plugin describes the tools it offers and answers calls to them; the server
collects the tools of every configured plugin and routes each call to the
plugin that owns the tool. Two plugins offering a tool with the same name
is an error at start-up.

Plugins that ship with the package:

| Runtime  | Tools | Settings (`env_vars`) |
|----------|-------|-----------------------|
| `time`   | `time` (operations `get_time_utc`, `parse_time`, `time_offset`) | none |
| `myip`   | `myip`: the public IP address of the host | none |
| `memory` | `store_memory`, `get_memory`: text stored by ID in SQLite | `db_path` |
| `sqlite` | `sqlite_read_query`, `sqlite_write_query`, `sqlite_create_table`, `sqlite_list_tables`, `sqlite_describe_table` | `db_path` |
| `qdrant` | `qdrant_create_collection`, `qdrant_store`, `qdrant_find` | `QDRANT_URL`, optional `QDRANT_API_KEY` |

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Configuration

The server reads a config file in JSON (`.json`), YAML (`.yaml` / `.yml`)
or TOML (`.toml`). Without `--config-file` it looks for
`hyper-mcp/config.json` in your user configuration directory.

```json
{
  "plugins": [
    {"name": "time", "path": "builtin://time"},
    {
      "name": "memory",
      "path": "builtin://memory",
      "runtime_config": {
        "env_vars": {"db_path": "/tmp/memory.db"}
      }
    },
    {
      "name": "qdrant",
      "path": "builtin://qdrant",
      "runtime_config": {
        "env_vars": {"QDRANT_URL": "http://localhost:6333", "QDRANT_API_KEY": "placeholder"}
      }
    }
  ],
  "insecure_skip_signature": false
}
```

Each plugin entry has a `name`, a `path` and an optional `runtime_config`
with `allowed_hosts`, `allowed_paths` and `env_vars`. The `env_vars` are
handed to the plugin as its settings.

The `path` decides which runtime serves the plugin:

- `builtin://<runtime>` selects one of the runtimes in the table above.
- Any other path is fetched first: paths starting with `http` are
  downloaded, paths starting with `oci://` are pulled from an OCI registry
  (using credentials from your docker `config.json` when present) and cached
  as `<name>-<hash>.wasm` in `hyper-mcp` under your user cache directory,
  and anything else is read as a local file. The tools are then served by
  the built-in runtime whose name is the plugin's `name`.

Images pulled over OCI must carry a cosign signature layer for their
manifest digest unless `insecure_skip_signature` is true.

## Running

```
hypermcp --config-file config.json
```

Options:

- `-c, --config-file FILE`: config file to load
- `--log-level LEVEL`: `trace`, `debug`, `info`, `warn`, `warning` or
  `error` (default `info`, env `HYPER_MCP_LOG_LEVEL`)
- `--transport {stdio,sse}`: transport (default `stdio`, env
  `HYPER_MCP_TRANSPORT`)
- `--bind-address ADDRESS`: `host:port` for the SSE server (default
  `127.0.0.1:3001`, env `HYPER_MCP_BIND_ADDRESS`)
- `-V, --version`: print the version

With `stdio` the server reads newline-delimited JSON-RPC from standard input
and writes responses to standard output until the input ends. With `sse` a
client opens `GET /sse`, receives an `endpoint` event naming
`/message?sessionId=...`, posts JSON-RPC messages there and gets the
responses as `message` events; the server runs until interrupted. Logs go to
standard error. The command exits with status 1 if the configuration or a
plugin cannot be loaded.

The server answers `initialize`, `ping`, `tools/list` and `tools/call`;
`completion/complete` and unknown methods get a "method not found" error.

## Using it from Python

```python
from hypermcp.config import load_config
from hypermcp.service import PluginService

service = PluginService(load_config("config.json"))
service.load_plugins()
print(service.handle_message({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}))
```

`PluginService.handle_message` takes one JSON-RPC message as a dict and
returns the response dict, or `None` for notifications, so the service can
be placed behind any transport. `PluginService(config, factories)` accepts
your own mapping of runtime names to plugin factories; a factory is called
with the plugin's settings and returns an object with `describe()` and
`call(request)`, using the types in `hypermcp.types`.

The plugins and helpers can also be used on their own, for example
`hypermcp.qdrant_client.QdrantClient` for the Qdrant REST API and
`hypermcp.oci.pull_and_extract_oci_image` for fetching a file from an image.

## What it does not do

- Plugin artifacts fetched from a URL, a registry or a file are not
  executed; the package has no WebAssembly runtime. A fetched plugin only
  works when a built-in runtime carries its name.
- `allowed_hosts` and `allowed_paths` are read and logged but not enforced:
  the built-in plugins run in the server process with its full access.
- Signature checking looks for a cosign signature layer that names the
  image's manifest digest; it does not verify the signature cryptographically
  against a trust root.
- Docker credential helpers and identity tokens are not supported; the
  registry is then accessed anonymously.