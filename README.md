# splitbit

splitbit is a small TCP load balancer. It accepts TCP connections and relays
each one to a backend service. Before it relays a connection, it checks the
backend's HTTP health endpoint.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Running

```
splitbit
```

With no options the balancer listens on `0.0.0.0:8080` and relays connections
to a backend at `localhost:8000`. Options:

- `--listen-host ADDRESS`: the address to listen on (default `0.0.0.0`).
- `--listen-port PORT`: the port to listen on (default `8080`).
- `--backend HOST:PORT`: a backend service. Repeat it to add more backends.
  If you give none, `localhost:8000` is used.

The command picks backends by round robin and skips backends that are marked
down. For each connection it sends
`GET http://HOST:PORT/health` to the chosen backend, with a 3 second timeout.
Only a `200` response counts as healthy. If no backend is available, if the
check fails, or if the backend cannot be reached, the client connection is
closed. If the check passes, bytes are copied both ways until either side
closes.

Log lines are written at INFO level. Press Ctrl+C to stop the balancer. The
command exits with status `1` if it cannot listen, or if accepting
connections fails with an error that is not temporary.

## Configuration files

`splitbit.config.load_config(path)` reads a YAML file like this one into a
`SplitbitConfig`:

```yaml
name: my-balancer
algorithm: round-robin        # or weighted-round-robin
scheme: tcp
backends:
  - name: app-1
    host: 10.0.0.1
    port: 8000
    weight: 2
    health_check: /health
  - name: app-2
    host: 10.0.0.2
    port: 8000
    health_check: /health
```

`load_config` does not validate the configuration. Call
`SplitbitConfig.validate()` for that. It raises `ConfigError` when the
configuration is not valid:

- a name is missing;
- the algorithm is not `round-robin` or `weighted-round-robin`;
- the scheme is not `tcp`;
- there are no backends;
- a backend has no name, host or `health_check`, a port outside 1–65535, or a
  negative weight.

Validation sets a backend weight of `0` (or a missing weight) to `1`.
`load_config` also raises `ConfigError` for YAML that does not parse and for
fields of the wrong type.

## Library use

```python
from splitbit.services import Service, RoundRobinSelector, WeightedRoundRobinSelector

backends = [Service("10.0.0.1", 8000), Service("10.0.0.2", 8000)]
selector = RoundRobinSelector(backends)
backend = selector.select_service()   # None if no backend is alive
print(backend.address())               # "10.0.0.1:8000"
```

- `Service.health_check()` requests `health_check_path` (default `/health`)
  and sets `alive` from the result. If the check fails, it raises
  `HealthCheckError`.
- `RoundRobinSelector` goes through the services in turn and skips those
  whose `alive` is false.
- `WeightedRoundRobinSelector` returns each live service `weight` times in a
  row before it moves on. `Service.weight` defaults to `0`, and a service
  with weight `0` is never chosen, so set a weight on each service.
- Both selectors are safe to call from several threads.
  `BackendSelector` is the abstract base for other selection strategies.

`splitbit.server.LoadBalancer(selector, listener)` is the relay behind the
command:

- `serve_forever()` accepts connections and handles each one in its own
  thread.
- `stop()` makes `serve_forever()` return.
- `handle_connection(conn)` relays a single connection.

`splitbit.tcp` contains the lower-level TCP helpers:

- `listen_tcp(host, port)` returns a `Listener`. `Listener.accept()` returns
  `SplitbitConnection` objects.
- `SplitbitConnection.dial_original_destination()` opens a transparent
  (`IP_TRANSPARENT`) connection to the address the client was originally
  connecting to. This needs Linux and the matching privileges.
- `to_socket_address` and `address_family` are small address helpers.

`splitbit.http_utils.is_http_request(text)` tells whether a piece of text
starts like an HTTP/1.x request line.

## What it does not do

- The `splitbit` command does not read a configuration file. Its backends
  come from `--backend` only, and it always uses round robin. To use a YAML
  configuration or weighted round robin, build the selector and
  `LoadBalancer` yourself.
- The balancer relays raw TCP. It does not route or inspect HTTP requests.

## Tests

```
pytest
```