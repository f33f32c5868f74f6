"""Session configuration.

Settings are grouped in small dataclasses and can be read from a YAML file
whose top-level keys mirror the groups::

    lattice:
      radius: 4
      scale: 1.5
    playback:
      highlight_seconds: 0.25
    osc:
      enabled: true
      port: 9001
    midi_output:
      enabled: true
      device_name: "IAC Driver Bus 1"

Missing keys keep their defaults; unknown keys raise ``ValueError``.
"""

import dataclasses
import logging
import os
import typing

import yaml


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class LatticeConfig:

	"""Size and spacing of the generated lattice region."""

	radius: int = 3
	scale: float = 1.5


@dataclasses.dataclass
class PlaybackConfig:

	"""
	Attributes:
		highlight_seconds: How long a triggered node or triad stays lit.
		tone_beats: Tone length in beats at the playing tempo (0.5 = an eighth note).
		default_octave: Octave used when a node is triggered by hand.
		velocity: Velocity of hand-triggered tones.
	"""

	highlight_seconds: float = 0.3
	tone_beats: float = 0.5
	default_octave: int = 4
	velocity: int = 100


@dataclasses.dataclass
class OscConfig:

	"""Where the OSC render sink sends lattice and highlight messages."""

	enabled: bool = False
	host: str = "127.0.0.1"
	port: int = 9001


@dataclasses.dataclass
class MidiOutputConfig:

	"""MIDI output used to voice tones."""

	enabled: bool = False
	device_name: typing.Optional[str] = None
	channel: int = 0


@dataclasses.dataclass
class TonnetzConfig:

	"""All settings for one visualizer session."""

	lattice: LatticeConfig = dataclasses.field(default_factory=LatticeConfig)
	playback: PlaybackConfig = dataclasses.field(default_factory=PlaybackConfig)
	osc: OscConfig = dataclasses.field(default_factory=OscConfig)
	midi_output: MidiOutputConfig = dataclasses.field(default_factory=MidiOutputConfig)


	def validate (self) -> None:

		"""Raise ``ValueError`` for settings the engine cannot run with."""

		_check_type("lattice.radius", self.lattice.radius, int)
		_check_type("lattice.scale", self.lattice.scale, (int, float))
		_check_type("playback.highlight_seconds", self.playback.highlight_seconds, (int, float))
		_check_type("playback.tone_beats", self.playback.tone_beats, (int, float))
		_check_type("playback.default_octave", self.playback.default_octave, int)
		_check_type("playback.velocity", self.playback.velocity, int)
		_check_type("osc.enabled", self.osc.enabled, bool)
		_check_type("osc.host", self.osc.host, str)
		_check_type("osc.port", self.osc.port, int)
		_check_type("midi_output.enabled", self.midi_output.enabled, bool)
		_check_type("midi_output.channel", self.midi_output.channel, int)

		if self.midi_output.device_name is not None:
			_check_type("midi_output.device_name", self.midi_output.device_name, str)

		if self.lattice.radius < 0:
			raise ValueError("lattice.radius must not be negative")

		if self.lattice.scale <= 0:
			raise ValueError("lattice.scale must be positive")

		if self.playback.highlight_seconds <= 0:
			raise ValueError("playback.highlight_seconds must be positive")

		if self.playback.tone_beats <= 0:
			raise ValueError("playback.tone_beats must be positive")

		# Octave 8 is the highest where every triad, stacked above its root, stays within note 127.
		if not -1 <= self.playback.default_octave <= 8:
			raise ValueError("playback.default_octave must be between -1 and 8")

		if not 1 <= self.playback.velocity <= 127:
			raise ValueError("playback.velocity must be between 1 and 127")

		if not 0 <= self.osc.port <= 65535:
			raise ValueError("osc.port must be between 0 and 65535")

		if not 0 <= self.midi_output.channel <= 15:
			raise ValueError("midi_output.channel must be between 0 and 15")


def _check_type (name: str, value: typing.Any, expected: typing.Union[type, typing.Tuple[type, ...]]) -> None:

	"""Raise ``ValueError`` unless ``value`` is an instance of ``expected``.

	``bool`` is only accepted where ``bool`` is expected, although it subclasses ``int``.
	"""

	allowed = expected if isinstance(expected, tuple) else (expected,)

	if isinstance(value, bool) and bool not in allowed:
		raise ValueError(f"{name} must not be a boolean")

	if not isinstance(value, allowed):
		raise ValueError(f"{name} has the wrong type: {value!r}")


def _build_section (cls: typing.Type[typing.Any], name: str, values: typing.Any) -> typing.Any:

	"""Instantiate one config dataclass from a mapping, rejecting unknown keys."""

	if values is None:
		return cls()

	if not isinstance(values, dict):
		raise ValueError(f"Config section {name!r} must be a mapping")

	known = {field.name for field in dataclasses.fields(cls)}
	unknown = set(values) - known

	if unknown:
		raise ValueError(f"Unknown keys in config section {name!r}: {sorted(unknown)}")

	return cls(**values)


def config_from_dict (data: typing.Optional[typing.Dict[str, typing.Any]]) -> TonnetzConfig:

	"""Build and validate a `TonnetzConfig` from parsed YAML data."""

	data = data or {}

	if not isinstance(data, dict):
		raise ValueError("Config file must contain a mapping of sections")

	sections = {field.name: field for field in dataclasses.fields(TonnetzConfig)}
	unknown = set(data) - set(sections)

	if unknown:
		raise ValueError(f"Unknown config sections: {sorted(unknown)}")

	config = TonnetzConfig(**{
		name: _build_section(field.default_factory, name, data.get(name))  # type: ignore[misc]
		for name, field in sections.items()
	})

	config.validate()

	return config


def load_config (config_path: str = "tonnetz.yaml") -> TonnetzConfig:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return TonnetzConfig()

	with open(config_path, "r") as f:
		return config_from_dict(yaml.safe_load(f))
