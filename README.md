# quickmux

quickmux is a small HTTP route manager. You register handlers by method
and path pattern, wrap them in middleware, and either serve them from a
threaded HTTP/1.1 server or drive them in-process from tests. It uses
only the standard library.

## Routing

```python
from quickmux.router import Quick

app = Quick()

def hello(c):
    c.set("Content-Type", "text/plain")
    c.status(200).send_string("Hello, Quick!")

def user(c):
    c.status(200).send_string("User Id: " + c.params["id"])

app.get("/hello", hello)
app.get("/users/:id", user)
app.get("/v1/user/{id:[0-9]+}", user)
```

Routes are registered with `get`, `post`, `put`, `delete`, `patch` and
`options` on `Quick`. Registering the same method and pattern twice
raises `ValueError`.

- A segment written `:name` captures any single segment.
- A segment written `{name:regex}` captures a segment only if the whole
  segment matches the expression.
- Other segments must match exactly, and the number of segments must be
  equal.

`serve_http(writer, request)` dispatches to the first matching route in
registration order and replies `404 page not found` when none matches.
`get_route()` returns the registered `Route` objects (`method`, `path`,
`pattern`, `params`).

The helpers behind matching are public in `quickmux.router`:
`create_params_and_valid(req_uri, pattern_uri)` returns the captured
parameters or `None`, `extract_params_pattern(pattern)` splits a pattern
into its fixed path and parameter part, and `clear_regex(route)` rewrites
`{name:regex}` segments as `_name:regex_`.

### The handler context

Each handler receives a `Ctx` with:

- `params` – captured path parameters,
- `query` – the first value of each query parameter (GET routes),
- `headers` – the request headers as a dict of lists,
- `body` – the request body (POST, PUT and PATCH routes),
- `set(key, value)` – set a response header,
- `status(code)` – choose the status for the next body; returns the context,
- `send_string(text)` – write the body,
- `bind()` – decode the body by `Content-Type`: JSON
  (`application/json`, with or without `charset=utf-8`) into Python
  values, `text/xml` or `application/xml` into an
  `xml.etree.ElementTree.Element`, anything else into `None`.

A handler that raises an exception produces a 500 response carrying the
exception's message as plain text.

OPTIONS routes always set `Allow` and `Access-Control-Allow-*` headers;
registering `options(pattern, None)` answers with 204 and no body.

## Configuration

`get_default_config()` returns a fresh `Config`:

| field | default |
|---|---|
| `body_limit` | 2 MiB |
| `max_body_size` | 2 MiB |
| `max_header_bytes` | 1 MiB |
| `route_capacity` | 1000 |
| `more_requests` | 290 |
| `read_timeout`, `write_timeout`, `idle_timeout`, `read_header_timeout` | 0 (seconds; 0 means none) |

Pass your own `Config` to `Quick(config)`; a `route_capacity` of 0 is
replaced by 1000. POST, PUT and PATCH requests whose declared
`Content-Length` exceeds `max_body_size` are refused with 413. The
timeouts become the socket timeout of served connections (the largest
non-zero one is used). `body_limit`, `max_header_bytes`,
`route_capacity` and `more_requests` are recorded but not enforced.

## Middleware

Middleware wraps the routes registered after it is added with `use`.
A middleware is either `mw(next_handler) -> handler` or
`mw(writer, request, next_handler)`.

```python
from quickmux.router import CORS, Quick
from quickmux.middleware import cors
from quickmux.middleware.basicauth import basic_auth
from quickmux.middleware.compress import gzip_middleware
from quickmux.middleware.logger import logger

password = "password"

app = Quick()
app.use(logger())
app.use(gzip_middleware())
app.use(basic_auth("admin", password))
app.use(cors.new(cors.default()), CORS)
```

Passing `CORS` (the string `"cors"`) as the extra argument also makes
the middleware wrap the whole router when it is served.

| module | function | what it does |
|---|---|---|
| `basicauth` | `basic_auth(username, password)` | 401 unless the `Authorization: Basic` credentials match; an absent header also gets `WWW-Authenticate` |
| `compress` | `gzip_middleware()` | gzips the body when `Accept-Encoding` contains `gzip`, sets `Content-Encoding` and `Vary` |
| `cors` | `new(config)`, `default(config)`, `CorsConfig.handler(next_handler)` | sets `X-Cors` and the allowed origins, methods and headers; `new` answers preflight requests with 204 and still calls the handler, `CorsConfig.handler` stops them |
| `logger` | `logger()` | logs address, status, method, path, duration and body size through the `quickmux.middleware.logger` logger at INFO; a `remote_addr` without a port gives 500 |
| `maxbody` | `max_body(max_bytes)` | 413 when the declared length exceeds the limit (default 5 MiB) |
| `msgid` | `msgid(config)`, `algo_default(start, end)` | stamps request and response with a random numeric id (`MsgIdConfig`, header `Msgid`) |
| `msguuid` | `msguuid(config)`, `generate_uuid(config)` | stamps request and response with a UUID (`MsgUuidConfig`, header `MsgUUID`, versions 1, 3 or 4, or a fixed `key_string`) |

Note that `msgid` and `msguuid` do not pass on requests that already
carry their header.

## Testing routes without a socket

`quickmux.qtest` runs a request straight through `serve_http`:

```python
from quickmux.qtest import QuickTestOptions, qtest, quick_test

result = quick_test(app, "GET", "/hello", None)
result.assert_status(200)
result.assert_body_contains("Hello")

result = qtest(app, QuickTestOptions(
    method="POST",
    uri="/users",
    query_params={"page": "1"},
    headers={"Content-Type": "application/json"},
    body=b'{"name": "Quick"}',
    cookies=[("session", "token")],
))
result.assert_header("Content-Type", "application/json")
```

A `QtestResult` has `body`, `body_str`, `status_code` and `headers`.
`assert_status`, `assert_header` and `assert_body_contains` raise
`AssertionError` on a mismatch; non-string values given to
`assert_body_contains` are compared by their compact JSON form.
`attach_query_params(uri, params)` merges parameters into a URI's query.
`quick_test` sends its body without a declared length, so the
`max_body_size` check does not apply to it; `qtest` declares the length.

## Serving

```python
server, stop = app.listen_with_shutdown("127.0.0.1:0")
print(server.addr)   # the bound address, e.g. 127.0.0.1:54321
stop()
```

`listen_with_shutdown(addr)` starts a `quickmux.server.Server` in a
background thread and returns it with its stop function. `listen(addr)`
and `listen_tls(addr, cert_file, key_file)` block until `app.shutdown()`
is called from another thread. An optional extra handler replaces the
router as the server's handler. `Server` can also be used directly, with
`start()`, `serve_forever()`, `shutdown()` or as a context manager.

## File uploads

`quickmux.upload` holds uploaded files in memory:

```python
from quickmux.upload import FileInfo, UploadedFile, parse_size, save_all

f = UploadedFile(FileInfo(filename="quick.txt", size=12,
                          content_type="text/plain", data=b"File content"))
f.save("uploads")            # or f.save("uploads", "other.txt")
save_all([f], "uploads")
parse_size("5MB")            # 5242880
```

Saving a file with no data and no explicit name raises `UploadError`;
`parse_size` raises `ValueError` for anything but a number followed by
`b`, `kb`, `mb`, `gb` or `tb`.

## What quickmux does not do

- `static(route, directory)` only records the mount; requests are not
  answered from the directory, so no files are served.
- Requests are not parsed as multipart forms: nothing builds an
  `UploadedFile` from a request for you.
- `Ctx` has no JSON, XML or file response helpers, and routes cannot be
  grouped under a shared prefix.
- There is no command-line program.