"""Named lookup of `Context` instances.

A `ContextDirectory` is an ordinary object that is passed to the contexts that
should be discoverable by name, rather than a table shared by the whole process.
"""

import logging
import threading
from typing import TYPE_CHECKING
from typing import Dict
from typing import Optional

if TYPE_CHECKING:
    from .context import Context


class ContextDirectory:
    """A mapping of names to contexts."""

    def __init__(self) -> None:
        self._contexts: Dict[str, "Context"] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def register(self, name: str, context: "Context") -> None:
        """
        Store `context` under `name`, replacing any context already there.

        Contexts created with both a name and a directory call this themselves.

        Args:
            name (str): The name to register under. Must not be empty.
            context (Context): The context instance.

        Raises:
            ValueError: If `name` is empty.
        """
        if not name:
            raise ValueError("Contexts can only be registered under a non-empty name.")

        with self._lock:
            self._contexts[name] = context
        self._logger.debug("Registered context '%s'", name)

    def get(
        self, name: str, default: Optional["Context"] = None
    ) -> Optional["Context"]:
        """Return the context registered under `name`, or `default` if there is none."""
        return self._contexts.get(name, default)

    def delete(self, name: str) -> None:
        """Remove the context registered under `name`. Does nothing if absent."""
        with self._lock:
            removed = self._contexts.pop(name, None)
        if removed is not None:
            self._logger.debug("Deleted context '%s'", name)

    def __contains__(self, name: object) -> bool:
        return name in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
