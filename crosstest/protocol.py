"""Protocol session: one side of a cross-test connection."""

from collections.abc import Callable
from typing import Any

from crosstest.identities import Identities
from crosstest.lifetime import Lifetime
from crosstest.scheduler import SingleThreadScheduler
from crosstest.serializers import Serializers
from crosstest.wire import ServerWire


class Protocol:
    """Binds a serializer registry and an id generator to a wire.

    Constructed on the worker thread and only used from it afterwards. The
    session ends with its lifetime, which must be nested inside the lifetime
    that owns the wire.
    """

    def __init__(
        self,
        name: str,
        serializers: Serializers,
        identities: Identities,
        scheduler: SingleThreadScheduler,
        wire: ServerWire,
        lifetime: Lifetime,
    ):
        scheduler.assert_thread()
        self.name = name
        self.serializers = serializers
        self.identities = identities
        self.scheduler = scheduler
        self.wire = wire
        self.lifetime = lifetime
        self._disposed = not lifetime.on_termination(self._dispose)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def send(self, value: Any) -> bool:
        """Serialize value and send it to the peer."""
        self.scheduler.assert_thread()
        if self._disposed:
            return False
        return self.wire.send(self.serializers.write(value))

    def advise(self, handler: Callable[[Any], None]) -> None:
        """Call handler on the worker with every value the peer sends."""

        def on_line(text: str) -> None:
            if not self._disposed:
                handler(self.serializers.read(text))

        self.wire.advise(on_line)

    def _dispose(self) -> None:
        self._disposed = True

    def __repr__(self) -> str:
        return f"Protocol({self.name!r}, {self.identities!r}, {self.wire!r})"
