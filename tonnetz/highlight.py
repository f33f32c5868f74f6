"""Timed highlight state for lattice nodes and triads.

Triggering an identity puts it in the highlighted state and schedules a revert
``duration`` seconds later on the running asyncio loop.  Triggering it again
while it is still lit restarts the window instead of stacking a second
highlight, so the sink sees exactly one ``True`` and one ``False`` per
continuous highlight.
"""

import asyncio
import logging
import typing

import tonnetz.sinks


logger = logging.getLogger(__name__)


class Highlighter:

	"""Tracks which identities are lit and reverts each after a fixed duration."""

	def __init__ (self, sink: typing.Optional[tonnetz.sinks.RenderSink] = None, duration: float = 0.3) -> None:

		if duration <= 0:
			raise ValueError("Highlight duration must be positive")

		self.sink = sink
		self.duration = duration
		self._reverts: typing.Dict[typing.Hashable, asyncio.TimerHandle] = {}


	def trigger (self, identity: typing.Hashable) -> None:

		"""Highlight ``identity``, or restart its window if it is already lit.

		Must be called from code running on an asyncio event loop.

		Raises:
			RuntimeError: If no event loop is running in this thread.
		"""

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			raise RuntimeError(
				f"Cannot highlight {identity!r}: no running event loop. "
				"Call trigger() from the loop thread, e.g. via loop.call_soon_threadsafe()."
			) from None
		previous = self._reverts.pop(identity, None)

		if previous is None:
			self._notify(identity, True)
		else:
			previous.cancel()

		self._reverts[identity] = loop.call_later(self.duration, self._revert, identity)


	def is_highlighted (self, identity: typing.Hashable) -> bool:

		return identity in self._reverts


	@property
	def active (self) -> typing.FrozenSet[typing.Hashable]:

		"""Identities currently highlighted."""

		return frozenset(self._reverts)


	def clear (self) -> None:

		"""Revert every highlight now and drop the pending reverts."""

		reverts, self._reverts = self._reverts, {}

		for identity, handle in reverts.items():
			handle.cancel()
			self._notify(identity, False)


	def _revert (self, identity: typing.Hashable) -> None:

		if self._reverts.pop(identity, None) is not None:
			self._notify(identity, False)


	def _notify (self, identity: typing.Hashable, active: bool) -> None:

		if self.sink is None:
			return

		try:
			self.sink.set_highlight(identity, active)
		except Exception:
			logger.exception(f"Render sink failed to update highlight for {identity}")
