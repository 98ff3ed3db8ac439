"""
RPC client and server for Python classes based on ZeroMQ and MessagePack.

xrdfs carries every file system request (dirlist, open, stat, mkdir, ...) as a call of
the matching method on a service object living on the server. The transport has a
couple of requirements:

* Low overhead per call
    * Every file system operation is a single round trip, so latency is key.
* Multithreading support
    * On the server side with multiple workers
    * On the client side with a socket per thread, so that independent callers never
    queue behind each other
* Cancellation
    * A call waiting for its answer must give up as soon as its Context is cancelled
    or its deadline passes.
* Automatic serialization and deserialization of dataclasses based on type annotations
    * Requests, responses and the entities they carry are all plain dataclasses.
* Transport and faithful recreation of builtin exceptions
    * As opposed to wrapping all exceptions into a generic RPC exception type
    * This makes it easy to forward things like FileNotFoundError or an OSError with
    errno ENOTEMPTY unchanged to the caller.
* Support for shared secret authentication

MessagePack supports fast and compact serialization, and allows for custom types without
writing a schema and generating code. ZeroMQ takes care of framing and of distributing
calls across workers with its DEALER/ROUTER and REQUEST/REPLY patterns.
"""

from abc import ABC
import builtins
from dataclasses import is_dataclass
from enum import auto, Enum
import logging
import threading
import time
import typing
from typing import Any, Dict, List, NoReturn, Optional, Tuple

import msgpack
import zmq

from xrdfs.context import Context
from xrdfs.logger import log, summarize

# Interval at which a pending call checks its context for cancellation
POLL_INTERVAL_MS = 50


class Encoding:
    """Serialization and deserialization of objects using MessagePack."""

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """
        Register all dataclass types used within the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List, Optional and Union.
        """
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def pack(self, obj: Any) -> bytes:
        """Serialize an object using MessagePack."""
        return msgpack.packb(obj, default=self.serialize_obj)

    def unpack(self, data: bytes) -> Any:
        """Deserialize an object using MessagePack."""
        return msgpack.unpackb(data, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn a dataclass or exception into a serialization friendly representation."""
        if isinstance(obj, BaseException):
            return self._serialize_exception(obj)
        elif obj.__class__.__qualname__ in self._dataclasses:
            return self._serialize_dataclass(obj)
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct a dataclass or exception from a serialized representation."""
        if isinstance(obj, dict) and "__exception__" in obj:
            return self._deserialize_exception(obj)
        elif isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    #
    # Exception serialization
    #

    @staticmethod
    def _serialize_exception(exc: BaseException) -> Dict:
        """Turn an exception into a serialization friendly dict."""
        return {"__exception__": {"name": exc.__class__.__qualname__, "args": exc.args}}

    @staticmethod
    def _deserialize_exception(obj: Dict) -> BaseException:
        """
        Reconstruct an exception from its serialized representation.

        If it was a builtin exception (like FileNotFoundError) then it is reconstructed
        faithfully, otherwise as a generic Exception with the original arguments.
        OSError arguments include the errno, so an OSError keeps its errno (and is
        mapped back to the matching subclass) on the receiving end.
        """
        name = obj["__exception__"]["name"]
        args = obj["__exception__"]["args"]

        builtin_exc = getattr(builtins, name, None.__class__)

        if isinstance(builtin_exc, type) and issubclass(builtin_exc, BaseException):
            return builtin_exc(*args)
        else:
            return Exception(*args)

    #
    # Data class serialization
    #

    @classmethod
    def _serialize_dataclass(cls, obj: Any) -> Dict:
        """Turn a dataclass into a serialization friendly dict."""
        return {"__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}}

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """
        Reconstruct a dataclass from its serialized representation.

        Only previously registered dataclass types can be deserialized.
        """
        type_name = obj["__data__"]["type"]
        type_data = obj["__data__"]["data"]

        if type_name in self._dataclasses:
            try:
                return self._dataclasses[type_name](**type_data)
            except Exception as e:
                raise TypeError(f"failed to deserialize {type_name}: {e}")
        else:
            raise TypeError(f"unknown dataclass '{type_name}'")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """
        Find all dataclass types used with the specified type.

        This includes the class itself, its class members, nested dataclasses, and
        container types like List, Optional and Union.
        """
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while len(candidates) > 0:
            candidate = candidates.pop()

            if candidate not in explored:
                explored.add(candidate)
            else:
                continue

            if is_dataclass(candidate):
                dataclasses.add(candidate)

                # Discover member types of dataclass
                for subtype in typing.get_type_hints(candidate).values():
                    candidates.add(subtype)
            elif hasattr(candidate, "__origin__"):
                # Discover types nested in constructs like Union[T] and List[T]
                for subtype in getattr(candidate, "__args__", ()):
                    candidates.add(subtype)

        return list(dataclasses)


class ReturnType(Enum):
    """Type of result for an RPC call."""

    NORMAL = auto()
    EXCEPTION = auto()
    TOKEN_ERROR = auto()


class InvalidTokenError(RuntimeError):
    """Exception raised when an RPC call is made with a wrong authentication token."""


class Base(ABC):
    """Shared logic between RPC client and server implementation."""

    def __init__(self, service_type: type):
        """Initialize RPC (de)serialization to support the specified service class."""
        function_types = self._discover_function_types(service_type)
        self._encoding = Encoding(*function_types)

    @staticmethod
    def _discover_function_types(service_type: type) -> List[type]:
        """Discover all types used as parameters or return values in the RPC service."""
        exposed_functions = [
            getattr(service_type, name)
            for name in dir(service_type)
            if not name.startswith("__") and callable(getattr(service_type, name))
        ]

        function_types: List[type] = []

        for func in exposed_functions:
            function_types += typing.get_type_hints(func).values()

        return function_types


class Server(Base):
    """
    RPC server to expose a service defined through members of a class instance.

    Example:
    ```
    class Foo:
        def bar(self, a, b):
            return a + b

    server = rpc.Server(Foo())
    server.serve("tcp://0.0.0.0:1094")
    ```
    """

    def __init__(
        self, service: Any, token: Optional[str] = None, worker_count: int = 1
    ):
        """
        Instantiate an RPC server for the given service class instance.

        The server will expose all public methods in the class to clients. If a token
        is specified then clients will need to be initialized with that same token to be
        allowed to make calls. Incoming calls will be distributed across the specified
        number of worker threads.
        """
        super().__init__(service.__class__)

        self.context = zmq.Context()

        self.service = service
        self.token = token
        self.worker_count = worker_count

        self._socket: Optional[zmq.Socket] = None

    def bind(self, endpoint: str) -> str:
        """
        Bind the server to the specified endpoint and return the resolved endpoint.

        The endpoint should have the format of endpoint in zmq_bind
        (http://api.zeromq.org/2-1:zmq-bind), for example "tcp://0.0.0.0:1094". A
        wildcard port ("tcp://127.0.0.1:*") is resolved to the port that was picked.
        """
        self._socket = self.context.socket(zmq.ROUTER)
        self._socket.bind(endpoint)

        return self._socket.getsockopt_string(zmq.LAST_ENDPOINT)

    def run(self) -> NoReturn:
        """Start handling calls for clients on the previously bound endpoint."""
        if self._socket is None:
            raise RuntimeError("server must be bound to an endpoint first")

        workers_socket = self.context.socket(zmq.DEALER)
        workers_socket.bind(f"inproc://{id(self)}")

        for _ in range(self.worker_count):
            t = threading.Thread(target=self._run_worker, daemon=True)
            t.start()

        log.info(
            f"serving {self.service.__class__.__name__} on "
            f"{self._socket.getsockopt_string(zmq.LAST_ENDPOINT)} "
            f"with {self.worker_count} worker(s)"
        )

        zmq.proxy(self._socket, workers_socket)

        assert False, "unreachable"

    def serve(self, endpoint: str) -> NoReturn:
        """Bind to the specified endpoint and start handling calls for clients."""
        self.bind(endpoint)
        self.run()

    def _run_worker(self) -> NoReturn:
        """Request/response loop to handle calls for a single worker thread."""
        socket = self.context.socket(zmq.REP)
        socket.connect(f"inproc://{id(self)}")

        while True:
            # Wait for a call to come in
            token, function, *args = self._encoding.unpack(socket.recv())

            if token != self.token:
                # Authentication token mismatch between client/server
                socket.send(self._encoding.pack((ReturnType.TOKEN_ERROR.value, None)))
                continue

            # Invoke the method and return the response (value/raised exception)
            try:
                if function.startswith("_"):
                    raise AttributeError(f"'{function}' is not an exposed function")
                else:
                    ret = getattr(self.service, function)(*args)

                socket.send(self._encoding.pack((ReturnType.NORMAL.value, ret)))
            except Exception as e:
                log.debug(f"rpc::{function} raised {e!r}")
                socket.send(self._encoding.pack((ReturnType.EXCEPTION.value, e)))


class Client(Base):
    """
    RPC client to invoke methods on a service instance exposed by an RPC server.

    A single client can be used by multiple threads and will internally create multiple
    socket connections as needed.

    Example:
    ```
    foo = rpc.Client(Foo, "tcp://localhost:1094")
    c = foo.call("bar", 1, 2)
    c = foo.call("bar", 1, 2, ctx=Context(timeout=1.0))
    ```
    """

    def __init__(
        self,
        service_type: type,
        endpoint: str,
        token: Optional[str] = None,
        timeout_ms: int = -1,
    ) -> None:
        """
        Instantiate an RPC client for the service type at the given endpoint.

        The endpoint should follow the format of endpoint in zmq_connect
        (http://api.zeromq.org/3-2:zmq-connect), for example "tcp://localhost:1094".
        """
        super().__init__(service_type)

        self.endpoint = endpoint
        self.token = token
        self.timeout_ms = timeout_ms

        self.context = zmq.Context()

        self._socket_pool: Dict[threading.Thread, zmq.Socket] = {}
        self._socket_pool_lock = threading.Lock()

    def _socket(self) -> zmq.Socket:
        """
        Return a socket to be used for the current thread.

        Each thread needs its own socket because REQUEST-REPLY need to happen in
        lockstep per socket. Sockets left behind by threads that have exited are closed
        whenever a new one is created.
        """
        t = threading.current_thread()

        with self._socket_pool_lock:
            if t not in self._socket_pool:
                for dead in [d for d in self._socket_pool if not d.is_alive()]:
                    self._socket_pool.pop(dead).close(linger=0)

                sock = self.context.socket(zmq.REQ)

                sock.setsockopt(zmq.RCVTIMEO, self.timeout_ms)
                sock.setsockopt(zmq.SNDTIMEO, self.timeout_ms)

                sock.connect(self.endpoint)

                self._socket_pool[t] = sock

            return self._socket_pool[t]

    def _discard_socket(self) -> None:
        """
        Close the socket of the current thread.

        A REQ socket that sent a call but never received its answer can't be used for
        another call, so the next call of this thread will connect a fresh socket.
        """
        with self._socket_pool_lock:
            sock = self._socket_pool.pop(threading.current_thread(), None)

        if sock is not None:
            sock.close(linger=0)

    def __del__(self) -> None:
        """Close the client sockets and their ZeroMQ context."""
        with self._socket_pool_lock:
            for sock in self._socket_pool.values():
                sock.close(linger=0)

            self.context.destroy()

    @property
    def socket_count(self) -> int:
        """Return the number of sockets for this client."""
        with self._socket_pool_lock:
            return len(self._socket_pool)

    @staticmethod
    def _summarize_args(args: tuple) -> Tuple[str, ...]:
        """Summarize a tuple of function arguments."""
        return tuple([summarize(arg) for arg in args])

    def _receive(self, sock: zmq.Socket, ctx: Optional[Context]) -> bytes:
        """
        Wait for the answer to a call that was just sent on the socket.

        Without a context this is a plain blocking receive bounded by the socket
        timeout. With a context the socket is polled in short intervals so that
        cancellation and the context deadline are noticed while the call is in flight.
        """
        if ctx is None:
            try:
                return sock.recv()
            except zmq.ZMQError:
                raise IOError("rpc call timed out")

        t_limit = None

        if self.timeout_ms >= 0:
            t_limit = time.monotonic() + self.timeout_ms / 1000

        while True:
            ctx.check()

            wait_ms = POLL_INTERVAL_MS
            remaining = ctx.remaining()

            if remaining is not None:
                wait_ms = min(wait_ms, int(remaining * 1000) + 1)

            if sock.poll(wait_ms, zmq.POLLIN):
                return sock.recv(zmq.NOBLOCK)

            if t_limit is not None and time.monotonic() >= t_limit:
                raise IOError("rpc call timed out")

    def call(
        self, name: str, *args: Any, ctx: Optional[Context] = None
    ) -> Any:
        """
        Call the named remote function with the given arguments.

        Serializes the arguments, makes the call and deserializes the resulting
        return value or raises the resulting exception.

        ZeroMQ connections are stateless so the token is sent again with every call.
        """
        if ctx is not None:
            ctx.check()

        sock = self._socket()

        t_call = time.time()

        # Serialize arguments and invoke remote function
        call = self._encoding.pack((self.token, name, *args))
        sock.send(call)

        # Wait for answer (return value, exception, token error, or RPC error)
        try:
            reply = self._receive(sock, ctx)
        except Exception:
            self._discard_socket()
            raise

        typ, *ret = self._encoding.unpack(reply)

        t_return = time.time()

        # Explicit check before logging because _summarize_args is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((t_return - t_call) * 1000)
            log.debug(f"rpc::{name}{self._summarize_args(args)} - {t_millis} ms")

        if typ == ReturnType.NORMAL.value:
            if len(ret) == 1:
                return ret[0]
            else:
                return ret
        elif typ == ReturnType.EXCEPTION.value:
            raise ret[0]
        elif typ == ReturnType.TOKEN_ERROR.value:
            raise InvalidTokenError("token mismatch between client and server")
        else:
            raise ValueError(f"unexpected return type {typ}")
