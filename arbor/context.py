"""
Arbor execution context (values and cancellation).

Scope
- Context: an immutable chain of key/value pairs plus a cancellation signal,
  attached by Command.execute to the resolved command and handed to hooks,
  positional completion callbacks and flag-value completion callbacks through
  `command.context`.
- Values flow down only: with_value()/with_cancel() derive a child context and
  never alter the parent.
- Cancellation is cooperative. The engine never checks it; callbacks that do
  long work are expected to look at `context.cancelled`.

Quick example:
    >>> root = Context.background()
    >>> ctx = root.with_value(user="ada").with_cancel()
    >>> ctx.value("user")
    'ada'
    >>> ctx.cancel(); ctx.cancelled, root.cancelled
    (True, False)
"""
import threading
from types import MappingProxyType

from .utils import Unset


class Context:
    """
    Node of a context chain.

    Parameters
    - parent: Context | None (positional-only)
    - values: keyword values visible from this node and its descendants.
    """

    def __init__(self, parent=None, /, **values):
        if parent is not None and not isinstance(parent, Context):
            raise TypeError("Context parent must be a Context")
        self._parent = parent
        self._values = MappingProxyType(values)
        self._event = threading.Event() if parent is None else Unset

    @classmethod
    def background(cls):
        """
        A fresh, never-cancelled root context.
        """
        return cls()

    @property
    def parent(self):
        return self._parent

    def value(self, key, default=None, /):
        """
        Return the nearest value stored under key, walking towards the root.
        """
        node = self
        while node is not None:
            if key in node._values:
                return node._values[key]
            node = node._parent
        return default

    def with_value(self, **values):
        return Context(self, **values)

    def with_cancel(self):
        """
        Derive a context that can be cancelled independently of its parent.
        """
        child = Context(self)
        child._event = threading.Event()
        return child

    def cancel(self):
        """
        Cancel the nearest cancellable node (this one or an ancestor).
        """
        node = self
        while node._event is Unset:
            node = node._parent
        node._event.set()

    @property
    def cancelled(self):
        node = self
        while node is not None:
            if node._event and node._event.is_set():
                return True
            node = node._parent
        return False

    def __repr__(self):
        return f"Context({dict(self._values)!r}, cancelled={self.cancelled!r})"


__all__ = (
    "Context",
)
