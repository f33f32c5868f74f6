"""Pitch class arithmetic for the Tonnetz lattice.

Every lattice coordinate ``(i, j)`` names a pitch class: ``i`` counts steps
along the perfect-fifth axis (7 semitones) and ``j`` counts steps along the
major-third axis (4 semitones).  The origin ``(0, 0)`` is C.

Module-level constants:
- `FIFTH_SEMITONES`, `MAJOR_THIRD_SEMITONES`: the two generating intervals.
- `PC_TO_NOTE_NAME`: Pitch class (0-11) to sharp-spelled name.
- `NOTE_NAME_TO_PC`: Note name (sharps and flats) to pitch class.

Note names carry an octave when converted to or from MIDI note numbers, using
the MMA convention **C4 = 60**::

    note_number_to_name(60)     # "C4"
    note_name_to_number("Bb3")  # 58
"""

import re
import typing


FIFTH_SEMITONES = 7
MAJOR_THIRD_SEMITONES = 4

PC_TO_NOTE_NAME: typing.List[str] = [
	"C",
	"C#",
	"D",
	"D#",
	"E",
	"F",
	"F#",
	"G",
	"G#",
	"A",
	"A#",
	"B",
]

NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

_NOTE_NAME_PATTERN = re.compile(r"^([A-G][#b]?)(-?\d+)$")


def pitch_class_of (i: int, j: int) -> int:

	"""Return the pitch class (0-11) of lattice coordinate ``(i, j)``.

	Example:
		```python
		pitch_class_of(0, 0)   # 0  (C)
		pitch_class_of(1, 0)   # 7  (G, a fifth up)
		pitch_class_of(0, 1)   # 4  (E, a major third up)
		pitch_class_of(-1, 0)  # 5  (F, a fifth down)
		```
	"""

	# Python's modulo already lands in [0, 11] for negative coordinates.
	return (FIFTH_SEMITONES * i + MAJOR_THIRD_SEMITONES * j) % 12


def pitch_class_to_name (pc: int) -> str:

	"""Return the sharp-spelled name of a pitch class."""

	return PC_TO_NOTE_NAME[pc % 12]


def note_number_to_pitch_class (note: int) -> int:

	"""Return the pitch class of a MIDI note number."""

	return note % 12


def note_number_to_name (note: int) -> str:

	"""Return the name of a MIDI note number with its octave (``61`` → ``"C#4"``)."""

	if not 0 <= note <= 127:
		raise ValueError(f"MIDI note number out of range: {note}")

	return f"{PC_TO_NOTE_NAME[note % 12]}{note // 12 - 1}"


def note_name_to_number (name: str) -> int:

	"""Parse a note name with octave and return its MIDI note number.

	Parameters:
		name: Pitch name followed by an octave, e.g. ``"C4"``, ``"F#2"``,
			``"Bb3"``.

	Raises:
		ValueError: If the name is not recognised or the note falls outside
			the MIDI range 0-127.
	"""

	match = _NOTE_NAME_PATTERN.match(name.strip())

	if match is None or match.group(1) not in NOTE_NAME_TO_PC:
		raise ValueError(
			f"Unknown note name: {name!r}. Expected e.g. 'C4', 'F#2', 'Bb3'."
		)

	note = (int(match.group(2)) + 1) * 12 + NOTE_NAME_TO_PC[match.group(1)]

	if not 0 <= note <= 127:
		raise ValueError(f"Note {name!r} is outside the MIDI range")

	return note
