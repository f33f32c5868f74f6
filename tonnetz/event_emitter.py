import logging
import typing


logger = logging.getLogger(__name__)

CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	A synchronous event emitter for playback lifecycle notifications.

	Listeners run in registration order.  A listener that raises is logged
	and skipped so one faulty observer cannot stop the timeline.
	"""

	def __init__ (self, event_names: typing.Optional[typing.Iterable[str]] = None) -> None:

		"""
		Initialize an empty registry, optionally restricted to known event names.
		"""

		self._known: typing.Optional[typing.FrozenSet[str]] = frozenset(event_names) if event_names is not None else None
		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def _check_name (self, event_name: str) -> None:

		if self._known is not None and event_name not in self._known:
			raise ValueError(f"Unknown event {event_name!r}. Expected one of: {sorted(self._known)}")


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._check_name(event_name)
		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener for ``event_name`` with the given arguments.
		"""

		self._check_name(event_name)

		# Copy so listeners may unregister themselves while being called.
		for callback in list(self._listeners.get(event_name, ())):

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")
