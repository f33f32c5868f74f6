"""One visualizer session: lattice, MIDI playback, highlights and sinks.

The session owns every collaborator it uses and has an explicit lifecycle -
nothing is a process-wide singleton::

    async with tonnetz.TonnetzSession(config, render_sink=my_renderer) as session:

        session.trigger(NodeKey(1, 0))          # user clicked G
        session.load_midi_file("chorale.mid")
        await session.play()

``init()`` builds the lattice and opens the sinks; ``dispose()`` cancels
playback, clears highlights and closes whatever the session opened.  Sinks
passed in by the caller are used but never opened or closed by the session.
"""

import logging
import pathlib
import time
import typing

import tonnetz.config
import tonnetz.constants
import tonnetz.highlight
import tonnetz.lattice
import tonnetz.midi_file
import tonnetz.pitch
import tonnetz.scheduler
import tonnetz.sinks


logger = logging.getLogger(__name__)

Identity = typing.Union[tonnetz.lattice.NodeKey, tonnetz.lattice.TriadKey]


class TonnetzSession:

	"""
	Dependency-injected context for driving a Tonnetz from clicks and MIDI files.
	"""

	def __init__ (
		self,
		config: typing.Optional[tonnetz.config.TonnetzConfig] = None,
		render_sink: typing.Optional[tonnetz.sinks.RenderSink] = None,
		audio_sink: typing.Optional[tonnetz.sinks.AudioSink] = None,
		clock: typing.Callable[[], float] = time.perf_counter
	) -> None:

		"""Create an uninitialized session.

		Parameters:
			config: Settings; defaults are used when omitted.
			render_sink: Renderer to drive. When omitted and ``config.osc.enabled``
				is set, an `OscRenderSink` is created on ``init()``.
			audio_sink: Audio engine to drive. When omitted and
				``config.midi_output.enabled`` is set, a `MidiAudioSink` is
				created on ``init()``.
			clock: Monotonic time source for the playback timeline.
		"""

		self.config = config or tonnetz.config.TonnetzConfig()
		self.config.validate()

		self.render_sink = render_sink
		self.audio_sink = audio_sink
		self._owned_sinks: typing.List[typing.Any] = []

		self.lattice: typing.Optional[tonnetz.lattice.Lattice] = None
		self.midi: typing.Optional[tonnetz.midi_file.MidiFileData] = None

		self.scheduler = tonnetz.scheduler.PlaybackScheduler(clock=clock)
		self.highlighter = tonnetz.highlight.Highlighter(duration=self.config.playback.highlight_seconds)


	@property
	def initialized (self) -> bool:

		return self.lattice is not None


	async def init (self) -> None:

		"""Build the lattice, open configured sinks and publish the lattice."""

		if self.initialized:
			return

		if self.render_sink is None and self.config.osc.enabled:
			osc_sink = tonnetz.sinks.OscRenderSink(self.config.osc.host, self.config.osc.port)
			osc_sink.open()
			self.render_sink = osc_sink
			self._owned_sinks.append(osc_sink)

		if self.audio_sink is None and self.config.midi_output.enabled:
			midi_sink = tonnetz.sinks.MidiAudioSink(
				device_name = self.config.midi_output.device_name,
				channel = self.config.midi_output.channel,
				velocity = self.config.playback.velocity
			)
			midi_sink.open()
			self.audio_sink = midi_sink
			self._owned_sinks.append(midi_sink)

		self.highlighter.sink = self.render_sink

		self.lattice = tonnetz.lattice.build_lattice(self.config.lattice.radius, self.config.lattice.scale)

		if self.render_sink is not None:
			try:
				self.render_sink.publish_lattice(self.lattice)
			except Exception:
				logger.exception("Render sink failed to receive the lattice")

		logger.info(
			f"Session ready: radius {self.lattice.radius}, {len(self.lattice.nodes)} nodes, "
			f"{len(self.lattice.triads)} triads"
		)


	async def dispose (self) -> None:

		"""Stop playback, revert highlights and close the sinks this session opened."""

		await self.scheduler.stop()
		self.highlighter.clear()

		owned, self._owned_sinks = self._owned_sinks, []

		for sink in owned:
			sink.close()

			if sink is self.render_sink:
				self.render_sink = None

			if sink is self.audio_sink:
				self.audio_sink = None

		self.lattice = None
		self.midi = None

		logger.info("Session disposed")


	async def __aenter__ (self) -> "TonnetzSession":

		await self.init()

		return self


	async def __aexit__ (self, *exc_info: typing.Any) -> None:

		await self.dispose()


	def _require_lattice (self) -> tonnetz.lattice.Lattice:

		if self.lattice is None:
			raise RuntimeError("Session is not initialized - call init() first")

		return self.lattice


	def _tone_seconds (self, tempo: float) -> float:

		return self.config.playback.tone_beats * 60.0 / tempo


	def _play_tone (self, note: int, tempo: float) -> None:

		if self.audio_sink is None:
			return

		try:
			self.audio_sink.play_tone(tonnetz.pitch.note_number_to_name(note), self._tone_seconds(tempo))
		except Exception:
			logger.exception(f"Audio sink failed to play note {note}")


	def chord_notes (self, triad: tonnetz.lattice.Triad) -> typing.List[int]:

		"""Return the triad's MIDI notes, root in the default octave and the rest stacked above it."""

		lattice = self._require_lattice()
		root_note = (self.config.playback.default_octave + 1) * 12 + triad.root

		return sorted(
			root_note + (lattice.node(key).pitch_class - triad.root) % 12
			for key in triad.nodes
		)


	def trigger (self, identity: Identity) -> None:

		"""Highlight a node or triad picked by the user and sound it.

		The highlight revert is timed on the asyncio loop, so this must be
		called on the loop thread.  A UI running in another thread should hand
		the call over with ``loop.call_soon_threadsafe(session.trigger, key)``.

		Raises:
			KeyError: If the identity is not part of the lattice.
			TypeError: If ``identity`` is neither a `NodeKey` nor a `TriadKey`.
			RuntimeError: If the session is not initialized, or if no event
				loop is running in the calling thread.
		"""

		lattice = self._require_lattice()
		tempo = self.midi.tempo if self.midi is not None else tonnetz.constants.DEFAULT_TEMPO_BPM

		if isinstance(identity, tonnetz.lattice.TriadKey):
			triad = lattice.triad(identity)
			self.highlighter.trigger(identity)

			for note in self.chord_notes(triad):
				self._play_tone(note, tempo)

			logger.debug(f"Triggered triad {triad.name} at {identity}")

		elif isinstance(identity, tonnetz.lattice.NodeKey):
			node = lattice.node(identity)
			self.highlighter.trigger(identity)
			self._play_tone((self.config.playback.default_octave + 1) * 12 + node.pitch_class, tempo)

			logger.debug(f"Triggered node {node.name} at {identity}")

		else:
			raise TypeError(f"Expected a NodeKey or TriadKey, got {identity!r}")


	def load_midi (self, data: bytes) -> tonnetz.midi_file.MidiFileData:

		"""Decode a MIDI file, replacing any previously loaded one."""

		self.midi = tonnetz.midi_file.parse(data)

		logger.info(f"Loaded {len(self.midi.events)} note events at {self.midi.tempo} BPM")

		return self.midi


	def load_midi_file (self, path: typing.Union[str, pathlib.Path]) -> tonnetz.midi_file.MidiFileData:

		"""Read and decode a MIDI file from disk, replacing any previously loaded one."""

		self.midi = tonnetz.midi_file.read_file(path)

		return self.midi


	def _on_event (self, event: tonnetz.midi_file.MidiEvent) -> None:

		"""Light the lattice node for a played note and sound it."""

		if self.lattice is None:
			return

		try:
			key = self.lattice.node_for_note(event.note)
		except LookupError:
			logger.debug(f"Note {event.note} has no node in this lattice - skipped")
			return

		self.highlighter.trigger(key)
		self._play_tone(event.note, self.scheduler.tempo)


	async def start (self) -> None:

		"""Begin playing the loaded MIDI file, cancelling any playback in progress."""

		self._require_lattice()

		if self.midi is None:
			raise RuntimeError("No MIDI file loaded - call load_midi() first")

		self.scheduler.schedule(self.midi.events, self.midi.tempo, self.midi.ticks_per_beat, self._on_event)

		await self.scheduler.start()


	async def wait (self) -> None:

		"""Wait for the current playback to finish or be cancelled."""

		await self.scheduler.wait()


	async def play (self) -> None:

		"""
		Convenience method to start playback and wait for completion.
		"""

		await self.start()
		await self.wait()


	async def stop (self) -> None:

		"""Cancel playback; already lit highlights fade out on their own."""

		await self.scheduler.stop()
