"""Boundaries to the rendering and audio collaborators.

The engine never draws or synthesizes anything itself.  It talks to two
collaborators through small protocols:

- `RenderSink` receives the lattice once and then highlight on/off changes for
  node and triad identities.
- `AudioSink` receives ``play_tone(pitch_name, duration_hint)`` calls.  Audio
  is best-effort: a sink that is not ready simply ignores the call.

Two reference implementations are provided:

- `OscRenderSink` streams the lattice and highlight changes to a renderer over
  OSC (UDP), one message per node, edge, triad or highlight change::

      /tonnetz/node i j x y pitch_class
      /tonnetz/edge ai aj bi bj
      /tonnetz/triad i j flipped polarity cx cy
      /tonnetz/highlight/node i j active
      /tonnetz/highlight/triad i j flipped active

- `MidiAudioSink` plays tones on a MIDI output port, so any synth or DAW can
  voice the lattice.
"""

import asyncio
import logging
import typing

import mido
import pythonosc.udp_client

import tonnetz.lattice
import tonnetz.midi_utils
import tonnetz.pitch


logger = logging.getLogger(__name__)


@typing.runtime_checkable
class RenderSink (typing.Protocol):

	"""
	Protocol for the rendering collaborator.
	"""

	def publish_lattice (self, lattice: tonnetz.lattice.Lattice) -> None:

		"""Receive the node, edge and triad sets to draw."""

		...


	def set_highlight (self, identity: typing.Hashable, active: bool) -> None:

		"""Turn the highlight of a node or triad identity on or off."""

		...


@typing.runtime_checkable
class AudioSink (typing.Protocol):

	"""
	Protocol for the audio collaborator.
	"""

	def play_tone (self, pitch_name: str, duration_hint: float) -> None:

		"""Sound a pitch such as ``"C#4"`` for roughly ``duration_hint`` seconds."""

		...


class OscRenderSink:

	"""Sends lattice geometry and highlight changes to an OSC renderer."""

	def __init__ (self, host: str = "127.0.0.1", port: int = 9001) -> None:

		self._host = host
		self._port = port
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None


	def open (self) -> None:

		"""Create the UDP client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._host, self._port)

		logger.info(f"OSC render sink sending to {self._host}:{self._port}")


	def close (self) -> None:

		"""Drop the UDP client; later sends are ignored."""

		self._client = None


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def publish_lattice (self, lattice: tonnetz.lattice.Lattice) -> None:

		for key, node in lattice.nodes.items():
			self.send("/tonnetz/node", key.i, key.j, node.position[0], node.position[1], node.pitch_class)

		for edge in lattice.edges:
			self.send("/tonnetz/edge", edge.a.i, edge.a.j, edge.b.i, edge.b.j)

		for triad in lattice.triads:
			self.send(
				"/tonnetz/triad",
				triad.key.i,
				triad.key.j,
				int(triad.key.flipped),
				triad.polarity,
				triad.centroid[0],
				triad.centroid[1]
			)

		logger.debug(f"Published lattice: {len(lattice.nodes)} nodes, {len(lattice.edges)} edges, {len(lattice.triads)} triads")


	def set_highlight (self, identity: typing.Hashable, active: bool) -> None:

		if isinstance(identity, tonnetz.lattice.TriadKey):
			self.send("/tonnetz/highlight/triad", identity.i, identity.j, int(identity.flipped), int(active))

		elif isinstance(identity, tonnetz.lattice.NodeKey):
			self.send("/tonnetz/highlight/node", identity.i, identity.j, int(active))

		else:
			logger.warning(f"Cannot highlight unknown identity {identity!r}")


class MidiAudioSink:

	"""Plays tones as note on/off pairs on a MIDI output port."""

	def __init__ (self, device_name: typing.Optional[str] = None, channel: int = 0, velocity: int = 100) -> None:

		if not 0 <= channel <= 15:
			raise ValueError("MIDI channel must be between 0 and 15")

		if not 1 <= velocity <= 127:
			raise ValueError("Velocity must be between 1 and 127")

		self.device_name = device_name
		self.channel = channel
		self.velocity = velocity
		self.midi_out: typing.Any = None
		self._note_offs: typing.Dict[int, asyncio.TimerHandle] = {}


	@property
	def ready (self) -> bool:

		return self.midi_out is not None


	def open (self) -> None:

		"""Open the output port; leaves the sink silent when none is available."""

		device_name, midi_out = tonnetz.midi_utils.select_output_device(self.device_name)

		if device_name:
			self.device_name = device_name
			self.midi_out = midi_out


	def close (self) -> None:

		"""Silence sounding notes and close the port."""

		note_offs, self._note_offs = self._note_offs, {}

		for note, handle in note_offs.items():
			handle.cancel()
			self._send("note_off", note, 0)

		if self.midi_out is not None:
			self.midi_out.close()
			self.midi_out = None


	def play_tone (self, pitch_name: str, duration_hint: float) -> None:

		if self.midi_out is None:
			logger.debug(f"MIDI output not ready - dropping tone {pitch_name}")
			return

		try:
			note = tonnetz.pitch.note_name_to_number(pitch_name)
		except ValueError as e:
			logger.warning(f"Cannot play tone: {e}")
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			logger.warning(f"No running event loop - cannot time the release of {pitch_name}")
			return

		# Retriggering a sounding note restarts it rather than stacking note-ons.
		previous = self._note_offs.pop(note, None)

		if previous is not None:
			previous.cancel()
			self._send("note_off", note, 0)

		self._send("note_on", note, self.velocity)
		self._note_offs[note] = loop.call_later(max(duration_hint, 0.0), self._release, note)


	def _release (self, note: int) -> None:

		if self._note_offs.pop(note, None) is not None:
			self._send("note_off", note, 0)


	def _send (self, message_type: str, note: int, velocity: int) -> None:

		if self.midi_out is None:
			return

		try:
			self.midi_out.send(mido.Message(message_type, channel=self.channel, note=note, velocity=velocity))
		except Exception:
			logger.exception(f"Failed to send MIDI {message_type} for note {note}")
