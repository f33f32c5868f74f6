"""Standard MIDI File decoding.

``parse()`` turns the raw bytes of a format 0 or format 1 Standard MIDI File
into the note-on events the visualizer plays, together with one effective
tempo and the file's time division::

    midi = tonnetz.midi_file.read_file("chorale.mid")

    midi.get_tempo()           # 120
    midi.get_ticks_per_beat()  # 480
    midi.get_note_events()     # [MidiEvent(note=60, velocity=100, time=0, ...), ...]

Only note-on events with a non-zero velocity are kept (a zero-velocity note-on
is a note-off).  Every other event is skipped by its declared length, so
unfamiliar meta or system events never stop a parse.

Tempo handling is deliberately simple: the last ``set_tempo`` meta event in
the file wins for the whole file, whatever its track or tick position.  There
is no tempo map.

Malformed input raises `FormatError` (bad chunk magic, truncated data,
running status with nothing to run on) or `EncodingRangeError` (a
variable-length quantity longer than four bytes).  Both derive from
`MidiDecodeError`, which is a ``ValueError``.
"""

import dataclasses
import logging
import math
import pathlib
import struct
import typing

import mido
import mido.messages.specs

import tonnetz.constants


logger = logging.getLogger(__name__)

HEADER_MAGIC = b"MThd"
TRACK_MAGIC = b"MTrk"

_CHUNK_HEADER = struct.Struct(">4sI")
_FILE_HEADER = struct.Struct(">HHH")


class MidiDecodeError (ValueError):

	"""Base class for errors raised while decoding a MIDI file."""


class FormatError (MidiDecodeError):

	"""The file does not follow the Standard MIDI File layout."""


class EncodingRangeError (MidiDecodeError):

	"""A variable-length quantity ran past the four bytes the format allows."""


@dataclasses.dataclass(frozen=True)
class MidiEvent:

	"""
	A note-on event at an absolute tick position.
	"""

	note: int
	velocity: int
	time: int
	track: int = dataclasses.field(default=0, compare=False)
	channel: int = dataclasses.field(default=0, compare=False)


@dataclasses.dataclass(frozen=True)
class MidiFileData:

	"""
	The result of decoding one MIDI file.

	Attributes:
		events: Note-on events of every track, ascending by ``time``.
		tempo: Effective tempo in BPM (rounded).
		ticks_per_beat: Time division in ticks per quarter note.
		format_type: Header format (0, 1 or 2).
		track_count: Number of tracks declared in the header.
		microseconds_per_beat: Raw value of the winning tempo event, or
			``None`` when the file has none.
	"""

	events: typing.Tuple[MidiEvent, ...]
	tempo: int
	ticks_per_beat: int
	format_type: int
	track_count: int
	microseconds_per_beat: typing.Optional[int] = None


	def get_note_events (self) -> typing.List[MidiEvent]:

		"""Return the note-on events as a list."""

		return list(self.events)


	def get_tempo (self) -> int:

		"""Return the effective tempo in BPM."""

		return self.tempo


	def get_ticks_per_beat (self) -> int:

		"""Return the number of ticks per quarter note."""

		return self.ticks_per_beat


	@property
	def duration_ticks (self) -> int:

		"""Tick position of the last note-on, or 0 for an empty file."""

		return self.events[-1].time if self.events else 0


class _TrackState:

	"""Decoding state for a single track chunk."""

	def __init__ (self, data: bytes, start: int, end: int, index: int) -> None:

		self.data = data
		self.position = start
		self.end = end
		self.index = index
		self.ticks = 0
		self.running_status: typing.Optional[int] = None


	def read_byte (self) -> int:

		if self.position >= self.end:
			raise FormatError(f"Track {self.index} ends in the middle of an event")

		value = self.data[self.position]
		self.position += 1

		return value


	def skip (self, length: int) -> bytes:

		if self.position + length > self.end:
			raise FormatError(f"Track {self.index} event data runs past the end of the chunk")

		payload = self.data[self.position:self.position + length]
		self.position += length

		return payload


	def read_variable_length (self) -> int:

		"""Read a big-endian base-128 quantity of at most four bytes."""

		value = 0

		for _ in range(tonnetz.constants.MAX_VARIABLE_LENGTH_BYTES):
			byte = self.read_byte()
			value = (value << 7) | (byte & 0x7F)

			if not byte & 0x80:
				return value

		raise EncodingRangeError(
			f"Variable-length quantity in track {self.index} exceeds "
			f"{tonnetz.constants.MAX_VARIABLE_LENGTH_BYTES} bytes"
		)


def _data_length (status: int) -> int:

	"""Return the number of data bytes following a channel or system status byte."""

	spec = mido.messages.specs.SPEC_BY_STATUS.get(status)

	if spec is None:
		# Undefined system status bytes carry no data.
		return 0

	return int(spec["length"]) - 1


def _read_chunk_header (data: bytes, position: int, expected: bytes, label: str) -> typing.Tuple[int, int]:

	"""Validate a chunk's magic and return ``(payload_start, payload_end)``."""

	if position + _CHUNK_HEADER.size > len(data):
		raise FormatError(f"Truncated {label}: missing chunk header")

	magic, length = _CHUNK_HEADER.unpack_from(data, position)

	if magic != expected:
		raise FormatError(f"Expected {expected!r} at {label}, found {magic!r}")

	start = position + _CHUNK_HEADER.size
	end = start + length

	if end > len(data):
		raise FormatError(f"Truncated {label}: chunk declares {length} bytes, {len(data) - start} available")

	return start, end


def _decode_track (track: _TrackState, events: typing.List[MidiEvent]) -> typing.Optional[int]:

	"""Decode one track, appending note-ons to ``events``.

	Returns the microseconds-per-beat value of the track's last tempo event, if any.
	"""

	tempo: typing.Optional[int] = None

	while track.position < track.end:

		track.ticks += track.read_variable_length()
		status = track.read_byte()

		if not status & 0x80:
			if track.running_status is None:
				raise FormatError(f"Running status without a preceding status byte in track {track.index}")

			# The byte just read is the first data byte of the running event.
			track.position -= 1
			status = track.running_status

		if status == 0xFF:
			meta_type = track.read_byte()
			payload = track.skip(track.read_variable_length())
			track.running_status = None

			if meta_type == tonnetz.constants.META_TEMPO and len(payload) == 3:
				value = int.from_bytes(payload, "big")

				if value > 0:
					tempo = value
				else:
					logger.warning(f"Ignoring zero tempo event in track {track.index} at tick {track.ticks}")

			elif meta_type == tonnetz.constants.META_END_OF_TRACK:
				break

			continue

		if status in (0xF0, 0xF7):
			track.skip(track.read_variable_length())
			track.running_status = None
			continue

		data = track.skip(_data_length(status))

		if any(byte & 0x80 for byte in data):
			raise FormatError(f"Data byte out of range in track {track.index} at tick {track.ticks}")

		if status >= 0xF0:
			continue

		track.running_status = status

		if status & 0xF0 == 0x90 and data[1] > 0:
			events.append(MidiEvent(
				note = data[0],
				velocity = data[1],
				time = track.ticks,
				track = track.index,
				channel = status & 0x0F
			))

	return tempo


def parse (data: bytes) -> MidiFileData:

	"""Decode a Standard MIDI File held in memory.

	Parameters:
		data: The complete file contents.

	Returns:
		A fresh `MidiFileData`; nothing from earlier parses is carried over.

	Raises:
		FormatError: Missing or wrong chunk magic, or truncated data.
		EncodingRangeError: A variable-length quantity longer than four bytes.
	"""

	data = bytes(data)

	header_start, header_end = _read_chunk_header(data, 0, HEADER_MAGIC, "file header")

	if header_end - header_start < _FILE_HEADER.size:
		raise FormatError("Truncated file header: expected at least 6 bytes")

	format_type, track_count, division = _FILE_HEADER.unpack_from(data, header_start)

	if division & 0x8000:
		logger.warning(f"SMPTE time division {division:#06x} is not supported; assuming {tonnetz.constants.DEFAULT_TICKS_PER_BEAT} ticks per beat")
		ticks_per_beat = tonnetz.constants.DEFAULT_TICKS_PER_BEAT
	else:
		ticks_per_beat = division or tonnetz.constants.DEFAULT_TICKS_PER_BEAT

	events: typing.List[MidiEvent] = []
	microseconds_per_beat: typing.Optional[int] = None
	position = header_end

	for index in range(track_count):
		start, end = _read_chunk_header(data, position, TRACK_MAGIC, f"track {index}")
		track_tempo = _decode_track(_TrackState(data, start, end, index), events)

		if track_tempo is not None:
			microseconds_per_beat = track_tempo

		position = end

	if microseconds_per_beat is None:
		tempo = tonnetz.constants.DEFAULT_TEMPO_BPM
	else:
		# Halves round up, so 960000 us per beat (62.5 BPM) reads as 63.
		tempo = math.floor(mido.tempo2bpm(microseconds_per_beat) + 0.5)

	# sorted() is stable, so equal times keep track order then file order.
	events.sort(key=lambda event: event.time)

	logger.debug(
		f"Decoded format {format_type} file: {track_count} tracks, {len(events)} note events, "
		f"{tempo} BPM, {ticks_per_beat} ticks per beat"
	)

	return MidiFileData(
		events = tuple(events),
		tempo = tempo,
		ticks_per_beat = ticks_per_beat,
		format_type = format_type,
		track_count = track_count,
		microseconds_per_beat = microseconds_per_beat
	)


def read_file (path: typing.Union[str, pathlib.Path]) -> MidiFileData:

	"""Read and decode a MIDI file from disk."""

	with open(path, "rb") as f:
		data = f.read()

	logger.info(f"Loaded MIDI file {path} ({len(data)} bytes)")

	return parse(data)
