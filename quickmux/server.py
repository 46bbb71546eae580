"""A threaded HTTP/1.1 server driving a handler with Request and ResponseWriter objects."""

from __future__ import annotations

import logging
import socket
import socketserver
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from quickmux.httpio import Handler, Headers, Request, ResponseWriter

SHUTDOWN_TIMEOUT = 5.0

_log = logging.getLogger(__name__)
_MAX_LINE = 65536


def _split_address(addr: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts; an empty address means port 80."""
    if addr == "":
        return "", 80
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise ValueError(f"address {addr}: missing ']' in address")
        host, rest = addr[1:end], addr[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"address {addr}: missing port in address")
        port_text = rest[1:]
    else:
        if ":" not in addr:
            raise ValueError(f"address {addr}: missing port in address")
        host, port_text = addr.rsplit(":", 1)
        if ":" in host:
            raise ValueError(f"address {addr}: too many colons in address")

    if port_text == "":
        return host, 0
    if port_text.isdigit():
        port = int(port_text)
        if port > 65535:
            raise ValueError(f"address {addr}: invalid port")
        return host, port
    try:
        return host, socket.getservbyname(port_text, "tcp")
    except OSError as exc:
        raise ValueError(f"address {addr}: unknown port") from exc


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], handler_class: type, family: int) -> None:
        self.address_family = family
        super().__init__(address, handler_class, bind_and_activate=False)

    def server_bind(self) -> None:
        # Skip the reverse name lookup done by the base class.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = host
        self.server_port = port


def _handler_class(app_handler: Handler, socket_timeout: float | None) -> type:
    class _RequestHandler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"
        timeout = socket_timeout

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            _log.debug("%s - %s", self.address_string(), format % args)

        def _read_chunked(self) -> bytes:
            chunks = []
            while True:
                line = self.rfile.readline(_MAX_LINE + 1)
                if not line:
                    raise ValueError("unexpected EOF in chunked body")
                try:
                    size = int(line.split(b";", 1)[0].strip(), 16)
                except ValueError as exc:
                    raise ValueError("malformed chunk size") from exc
                if size < 0:
                    raise ValueError("malformed chunk size")
                if size == 0:
                    break
                chunk = self.rfile.read(size)
                if len(chunk) < size:
                    raise ValueError("unexpected EOF in chunked body")
                chunks.append(chunk)
                self.rfile.readline(_MAX_LINE + 1)
            while True:
                trailer = self.rfile.readline(_MAX_LINE + 1)
                if trailer in (b"\r\n", b"\n", b""):
                    break
            return b"".join(chunks)

        def _read_body(self) -> tuple[bytes, int]:
            if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
                return self._read_chunked(), -1
            raw = self.headers.get("Content-Length")
            if raw is None:
                return b"", 0
            raw = raw.strip()
            if not raw.isdigit():
                raise ValueError("bad Content-Length")
            length = int(raw)
            data = self.rfile.read(length)
            if len(data) < length:
                raise ValueError("unexpected EOF in body")
            return data, length

        def _dispatch(self) -> None:
            try:
                body, length = self._read_body()
            except ValueError:
                self.send_error(400, "Bad Request")
                return

            headers = Headers()
            for key, value in self.headers.items():
                headers.add(key, value)
            host = headers.get("Host")
            headers.delete("Host")
            client_host, client_port = self.client_address[:2]
            request = Request(
                method=self.command,
                target=self.path,
                headers=headers,
                body=body,
                content_length=length,
                remote_addr=_join_host_port(client_host, client_port),
                host=host,
            )

            writer = ResponseWriter()
            try:
                app_handler(writer, request)
            except Exception:
                _log.exception("error serving %s %s", request.method, request.path)
                self.close_connection = True
                return
            self._send(writer)

        def _send(self, writer: ResponseWriter) -> None:
            status = writer.status
            bodiless = status in (204, 304) or 100 <= status < 200
            self.send_response_only(status)
            for key, values in writer.headers.to_dict().items():
                for value in values:
                    self.send_header(key, value)
            if "Date" not in writer.headers:
                self.send_header("Date", self.date_time_string())
            if not bodiless and "Content-Length" not in writer.headers:
                self.send_header("Content-Length", str(len(writer.body)))
            self.end_headers()
            if not bodiless and self.command != "HEAD":
                self.wfile.write(writer.body)

        do_GET = do_HEAD = do_POST = do_PUT = do_DELETE = _dispatch
        do_PATCH = do_OPTIONS = do_CONNECT = do_TRACE = _dispatch

    return _RequestHandler


class Server:
    """Serves *handler* on a TCP address, in a background thread.

    Connections whose socket stays silent longer than the largest configured
    timeout (in seconds) are dropped; zero means no limit. Giving both
    ``cert_file`` and ``key_file`` serves over TLS.
    """

    def __init__(
        self,
        handler: Handler,
        addr: str,
        *,
        read_timeout: float = 0.0,
        write_timeout: float = 0.0,
        idle_timeout: float = 0.0,
        read_header_timeout: float = 0.0,
        cert_file: str | None = None,
        key_file: str | None = None,
    ) -> None:
        self.handler = handler
        self.addr = addr
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.idle_timeout = idle_timeout
        self.read_header_timeout = read_header_timeout
        self.cert_file = cert_file
        self.key_file = key_file
        self._httpd: _HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    @property
    def port(self) -> int:
        return _split_address(self.addr)[1]

    @property
    def running(self) -> bool:
        return self._httpd is not None

    def _socket_timeout(self) -> float | None:
        limits = [
            t
            for t in (self.read_timeout, self.write_timeout, self.idle_timeout, self.read_header_timeout)
            if t and t > 0
        ]
        return max(limits) if limits else None

    def _tls_context(self) -> ssl.SSLContext:
        if not (self.cert_file and self.key_file):
            raise ValueError("both cert_file and key_file are required for TLS")
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(self.cert_file, self.key_file)
        return context

    def start(self) -> Server:
        """Bind the address and begin serving in the background.

        Raises ValueError for a malformed address and OSError when the
        address cannot be bound or the certificate cannot be loaded.
        """
        with self._lock:
            if self._httpd is not None:
                raise RuntimeError("server already started")
            host, port = _split_address(self.addr)
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            httpd = _HTTPServer(
                (host, port), _handler_class(self.handler, self._socket_timeout()), family
            )
            try:
                httpd.server_bind()
                httpd.server_activate()
                if self.cert_file or self.key_file:
                    httpd.socket = self._tls_context().wrap_socket(httpd.socket, server_side=True)
            except BaseException:
                httpd.server_close()
                raise

            bound_host, bound_port = httpd.server_address[:2]
            self.addr = _join_host_port(bound_host, bound_port)
            self._httpd = httpd
            self._stopped.clear()
            self._thread = threading.Thread(
                target=httpd.serve_forever,
                kwargs={"poll_interval": 0.1},
                name=f"quickmux-server-{self.addr}",
                daemon=True,
            )
            self._thread.start()
        return self

    def serve_forever(self) -> None:
        """Start if needed, then block until the server is shut down."""
        if self._httpd is None:
            self.start()
        try:
            self._stopped.wait()
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Stop accepting connections and close the listener; safe to repeat."""
        with self._lock:
            httpd, thread = self._httpd, self._thread
            self._httpd = None
            self._thread = None
        if httpd is not None:
            httpd.shutdown()
            httpd.server_close()
            if thread is not None:
                thread.join(SHUTDOWN_TIMEOUT)
        self._stopped.set()

    def __enter__(self) -> Server:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()