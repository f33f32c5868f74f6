import asyncio
import dataclasses
import heapq
import logging
import time
import typing

import tonnetz.constants
import tonnetz.event_emitter
import tonnetz.midi_file


logger = logging.getLogger(__name__)

TriggerCallback = typing.Callable[[tonnetz.midi_file.MidiEvent], typing.Any]

EVENT_NAMES = ("start", "trigger", "complete", "cancel")


@dataclasses.dataclass(order=True)
class ScheduledTrigger:

	"""
	A callback due at a wall-clock offset from the start of playback.
	"""

	offset: float
	sequence: int
	event: tonnetz.midi_file.MidiEvent = dataclasses.field(compare=False)
	kind: str = dataclasses.field(compare=False, default="note_on")


def ticks_to_seconds (ticks: float, tempo: float, ticks_per_beat: int) -> float:

	"""Convert a tick position to seconds: ``ticks / ticks_per_beat * 60 / tempo``."""

	return ticks / ticks_per_beat * 60.0 / tempo


def _usable (value: typing.Any, default: int, label: str) -> float:

	"""Return ``value`` when it is a positive number, otherwise ``default``."""

	if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
		return value

	if value is not None:
		logger.warning(f"Invalid {label} {value!r}; using {default}")

	return default


class PlaybackScheduler:

	"""
	Dispatches note events at their wall-clock times on the asyncio loop.

	One session at a time: ``schedule()`` cancels whatever is pending before
	queueing new triggers, so triggers from two sessions never interleave.

	Lifecycle events (register with ``on_event``):
		``start`` - playback task created.
		``trigger`` - a trigger fired; receives the `ScheduledTrigger`.
		``complete`` - every trigger of the session fired.
		``cancel`` - pending triggers were discarded.
	"""

	def __init__ (self, clock: typing.Callable[[], float] = time.perf_counter) -> None:

		"""Create an idle scheduler.

		Parameters:
			clock: Monotonic time source in seconds.
		"""

		self._clock = clock
		self.events = tonnetz.event_emitter.EventEmitter(EVENT_NAMES)

		self._queue: typing.List[ScheduledTrigger] = []
		self._on_trigger: typing.Optional[TriggerCallback] = None
		self._session = 0
		self._task: typing.Optional[asyncio.Task] = None

		self.start_time = 0.0
		self.tempo: float = tonnetz.constants.DEFAULT_TEMPO_BPM
		self.ticks_per_beat: int = tonnetz.constants.DEFAULT_TICKS_PER_BEAT


	@property
	def running (self) -> bool:

		"""True while a playback task is advancing the timeline."""

		return self._task is not None and not self._task.done()


	@property
	def pending (self) -> int:

		"""Number of triggers that have not fired yet."""

		return len(self._queue)


	@property
	def session (self) -> int:

		"""Identifier of the current session; changes on every schedule or cancel."""

		return self._session


	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for a named lifecycle event.
		"""

		self.events.on(event_name, callback)


	def schedule (
		self,
		events: typing.Iterable[tonnetz.midi_file.MidiEvent],
		tempo: typing.Optional[float],
		ticks_per_beat: typing.Optional[int],
		on_trigger: TriggerCallback
	) -> int:

		"""Queue one trigger per event for a new session.

		Any previous session is cancelled first.  A missing or non-positive
		tempo falls back to 120 BPM and a missing time division to 480 ticks
		per beat; this method does not raise for either.

		Returns:
			The new session identifier.
		"""

		self.cancel()

		self.tempo = _usable(tempo, tonnetz.constants.DEFAULT_TEMPO_BPM, "tempo")
		self.ticks_per_beat = int(_usable(ticks_per_beat, tonnetz.constants.DEFAULT_TICKS_PER_BEAT, "ticks per beat"))
		self._on_trigger = on_trigger

		for sequence, event in enumerate(events):
			heapq.heappush(self._queue, ScheduledTrigger(
				offset = ticks_to_seconds(event.time, self.tempo, self.ticks_per_beat),
				sequence = sequence,
				event = event
			))

		logger.debug(f"Session {self._session}: scheduled {len(self._queue)} triggers at {self.tempo} BPM")

		return self._session


	async def start (self) -> None:

		"""Start advancing the timeline from offset 0 in a separate asyncio task."""

		if self.running:
			return

		if self._on_trigger is None:
			logger.warning("Nothing scheduled - start() ignored")
			return

		self._task = asyncio.create_task(self._run_loop(self._session))

		logger.info(f"Playback started ({len(self._queue)} triggers)")

		self.events.emit("start")


	def cancel (self) -> None:

		"""Discard every pending trigger of the current session immediately.

		No callback of the cancelled session fires after this returns.
		"""

		had_pending = bool(self._queue) or self.running

		self._session += 1
		self._queue = []
		self._on_trigger = None

		# The cancelled task may still be unwinding; it is detached so a new
		# session can start at once, and its session check keeps it silent.
		if self._task is not None and not self._task.done():
			self._task.cancel()

		self._task = None

		if had_pending:
			logger.info("Playback cancelled")
			self.events.emit("cancel")


	async def stop (self) -> None:

		"""
		Cancel playback and wait for the playback task to finish.
		"""

		task = self._task

		self.cancel()

		if task is not None:
			try:
				await task
			except asyncio.CancelledError:
				pass


	async def wait (self) -> None:

		"""Wait until the current playback task finishes or is cancelled."""

		if self._task is None:
			return

		try:
			await self._task
		except asyncio.CancelledError:
			pass


	async def play (self) -> None:

		"""
		Convenience method to start playback and wait for completion.
		"""

		await self.start()
		await self.wait()


	def _fire (self, trigger: ScheduledTrigger) -> None:

		"""Invoke the session callback, logging rather than propagating failures."""

		if self._on_trigger is None:
			return

		session = self._session

		try:
			self._on_trigger(trigger.event)
		except Exception:
			logger.exception(f"Trigger callback failed for note {trigger.event.note} at {trigger.offset:.3f}s")

		# The callback may have cancelled or replaced this session.
		if session == self._session:
			self.events.emit("trigger", trigger)


	async def _run_loop (self, session: int) -> None:

		"""Fire triggers as their offsets come due, until done or cancelled."""

		self.start_time = self._clock()

		while session == self._session and self._queue:

			trigger = self._queue[0]
			delay = self.start_time + trigger.offset - self._clock()

			if delay > 0:
				await asyncio.sleep(delay)
				continue

			heapq.heappop(self._queue)
			self._fire(trigger)

		if session == self._session:
			logger.info("Playback complete")
			self._on_trigger = None
			self.events.emit("complete")
