import typing

import mido
import pytest


class FakeMidiOut:

	"""MIDI output stub that records what it is sent."""

	def __init__ (self, name: str = "Dummy MIDI") -> None:

		self.name = name
		self.sent: typing.List[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)


	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True


# Module-level reference so tests can inspect the most recently opened output.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut(name)
	_current_fake_output = fake
	return fake


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for tests that need one."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


class RecordingRenderSink:

	"""Render sink that records published lattices and highlight changes."""

	def __init__ (self) -> None:

		self.lattices: typing.List[typing.Any] = []
		self.highlights: typing.List[typing.Tuple[typing.Any, bool]] = []


	def publish_lattice (self, lattice: typing.Any) -> None:

		self.lattices.append(lattice)


	def set_highlight (self, identity: typing.Any, active: bool) -> None:

		self.highlights.append((identity, active))


class RecordingAudioSink:

	"""Audio sink that records requested tones."""

	def __init__ (self) -> None:

		self.tones: typing.List[typing.Tuple[str, float]] = []


	def play_tone (self, pitch_name: str, duration_hint: float) -> None:

		self.tones.append((pitch_name, duration_hint))


# ---------------------------------------------------------------------------
# Standard MIDI File builders
# ---------------------------------------------------------------------------

def vlq (value: int) -> bytes:

	"""Encode a variable-length quantity."""

	out = [value & 0x7F]
	value >>= 7

	while value:
		out.append((value & 0x7F) | 0x80)
		value >>= 7

	return bytes(reversed(out))


def chunk (magic: bytes, payload: bytes) -> bytes:

	"""Wrap a payload in a chunk header."""

	return magic + len(payload).to_bytes(4, "big") + payload


def header (track_count: int, ticks_per_beat: int = 480, format_type: int = 1) -> bytes:

	"""Build an MThd chunk."""

	return chunk(
		b"MThd",
		format_type.to_bytes(2, "big") + track_count.to_bytes(2, "big") + ticks_per_beat.to_bytes(2, "big")
	)


def tempo_event (microseconds_per_beat: int, delta: int = 0) -> bytes:

	"""A set_tempo meta event."""

	return vlq(delta) + b"\xff\x51\x03" + microseconds_per_beat.to_bytes(3, "big")


def end_of_track (delta: int = 0) -> bytes:

	return vlq(delta) + b"\xff\x2f\x00"


def smf (*tracks: bytes, ticks_per_beat: int = 480, format_type: int = 1) -> bytes:

	"""Build a complete file from raw track payloads."""

	return header(len(tracks), ticks_per_beat, format_type) + b"".join(chunk(b"MTrk", t) for t in tracks)
