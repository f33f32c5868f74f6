"""Timing and file-format constants.

- `DEFAULT_TEMPO_BPM = 120` — used when a MIDI file carries no tempo event, or
  when playback is scheduled without a usable tempo.
- `DEFAULT_TICKS_PER_BEAT = 480` — used when a file's time division is zero,
  SMPTE-based, or missing at schedule time.
- `MAX_VARIABLE_LENGTH_BYTES = 4` — the longest delta-time encoding a Standard
  MIDI File may use.
"""

DEFAULT_TEMPO_BPM = 120
DEFAULT_TICKS_PER_BEAT = 480

MAX_VARIABLE_LENGTH_BYTES = 4

# Meta event types
META_TEMPO = 0x51
META_END_OF_TRACK = 0x2F
