# cooper

Building blocks for reactor-style TCP programs on POSIX systems. An
`EventLoop` runs in one thread, watches file descriptors through `Channel`
objects (using `select.poll`), and runs timers and queued functions. Around
it sit a listening socket (`Acceptor`), non-blocking outgoing connections
(`Connector`), loop threads and pools, HTTP/1.x request parsing and routing,
and a dispatcher for length-prefixed application messages.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `cooper.inet_address` | `InetAddress`: IPv4/IPv6 address and port |
| `cooper.channel` | `Channel`, `Event`: events wanted on one descriptor and their callbacks |
| `cooper.poller` | `Poller`: `select.poll` wrapper that reports ready channels |
| `cooper.event_loop` | `EventLoop`, `get_event_loop_of_current_thread()` |
| `cooper.event_loop_thread` | `EventLoopThread`, `EventLoopThreadPool` |
| `cooper.acceptor` | `Acceptor`: listening socket driven by a loop |
| `cooper.connector` | `Connector`: outgoing connection with retries |
| `cooper.http_types` | `HttpStatus`, `HttpHeader`, `HeaderValue`, `Headers`, `HttpResponse`, `HttpContentWriter`, `MultipartFormData` |
| `cooper.http_request` | `HttpRequest`, `MultipartFormDataParser`, `parse_multipart_boundary()` |
| `cooper.http_server` | `HttpServer`: routing, static files, keep-alive accounting |
| `cooper.app_server` | `AppTcpServer`, `Mode`: framed message dispatch |

## Addresses

```python
from cooper.inet_address import InetAddress

addr = InetAddress.from_ip("192.168.1.10", 8080)
addr.to_ip_port()       # "192.168.1.10:8080"
addr.is_intranet_ip()   # True
InetAddress(8888, True).is_loopback_ip()   # 127.0.0.1 -> True
```

An address string that cannot be parsed gives an endpoint for which
`is_unspecified()` returns True.

## Event loops

```python
from cooper.event_loop import EventLoop

loop = EventLoop()
loop.run_every(0.1, lambda: print("tick"))
loop.run_after(0.5, loop.quit)
loop.loop()        # blocks until quit() is called
loop.close()
```

Only one loop may exist per thread. `run_in_loop` calls a function straight
away on the loop's own thread and queues it otherwise; `queue_in_loop` always
queues it. `run_at` takes epoch seconds or a `datetime`; `run_after` and
`run_every` take seconds or a `timedelta`. Each timer call returns an id for
`invalidate_timer`. Functions given to `run_on_quit` run once the loop has
stopped.

`EventLoopThread` creates a loop in a background thread and starts it with
`run()`; `close()` makes it quit and joins the thread. `EventLoopThreadPool`
holds several of them; `start()` runs them all and `next_loop()` hands them
out in turn.

## Accepting and connecting

```python
from cooper.acceptor import Acceptor
from cooper.event_loop import EventLoop
from cooper.inet_address import InetAddress

loop = EventLoop()
acceptor = Acceptor(loop, InetAddress(0, True))
acceptor.new_connection_callback = lambda sock, peer: print("from", peer)
acceptor.listen()
print(acceptor.addr.to_port())   # the port actually bound
```

Without a `new_connection_callback`, accepted sockets are closed at once.
`before_listen_callback` and `after_accept_callback` receive the listening
and the accepted socket.

`Connector(loop, addr)` connects without blocking; `start()` begins, the
connected socket goes to `new_connection_callback`, and failed attempts are
retried after 500 ms, doubling up to 30 s, unless `retry=False` is given.

## HTTP

`HttpServer` handles requests that the caller has already read:
`handle_message(conn, buffer)` parses one request from a `bytearray`, routes
it and writes the response to `conn`. The connection object must provide
`send(data)`, `send_file(path, offset, size)` and `force_close()`, and may
provide `read_more(buffer)` for streamed multipart bodies.

```python
from cooper.http_server import HttpServer

server = HttpServer(8888)

def hello(request, response):
    response.body = "<h1>Hello, world</h1>"

server.add_endpoint("GET", "/hello", hello)
server.add_mount_point("/static/", "/srv/static", {})

class Conn:
    def send(self, data): print(data)
    def send_file(self, path, offset, size): ...
    def force_close(self): print("closed")

server.handle_message(Conn(), bytearray(b"GET /hello HTTP/1.1\r\n\r\n"))
```

Only GET and POST are routed; other methods get 405, unknown paths 404 and
malformed requests 400, and any response other than 200 closes the
connection. Files below a mount point are served for GET requests, subject
to `file_auth_callback` when set (403 when it returns False). HTTP/1.1
connections, and HTTP/1.0 ones that ask for keep-alive, are closed after
`max_keep_alive_requests` requests; call `connection_closed(conn)` when a
connection goes away.

Multipart uploads are streamed with
`HttpRequest.parse_multipart_form_data(callbacks)`, where `callbacks` maps
form field names to `callback(part, data, flag)`: called once with
`FLAG_FILENAME` after the part headers, then with `FLAG_CONTENT` and slices
of the content. Parse errors raise `ValueError`.

## Application messages

`AppTcpServer.handle_message(conn, buffer)` takes every complete frame (a
4-byte little-endian length and a payload) from a `bytearray` and leaves a
partial one in place. In `Mode.BUSINESS` the payload is JSON with a `"type"`
field; in `Mode.MEDIA` its first 4 bytes hold the type and the handler gets
the whole payload.

```python
from cooper.app_server import AppTcpServer, Mode

server = AppTcpServer(8888, True)
server.set_mode(Mode.BUSINESS)
server.register_business_handler(1, lambda conn, message: conn.send(b"hello, world"))
```

With ping/pong on, messages of type 200 (pong) are not dispatched; the time
each arrives is recorded per connection in `last_pong`.

## What this package does not do

- There is no TCP connection or TCP server class: nothing joins `Acceptor`
  and the event loops to `HttpServer` or `AppTcpServer`. The `port` these
  servers are given is stored, not listened on; reading sockets into buffers
  and providing the connection object is up to the caller.
- `AppTcpServer` does not send pings or close connections that stop
  answering; it only records pongs.
- There is no command-line program and no TLS.