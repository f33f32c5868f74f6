"""
Tonnetz - a lattice engine for visualizing harmony from clicks and MIDI files.

The Tonnetz lays pitch classes out on a triangular lattice: one axis steps by
perfect fifths, the other by major thirds.  Every small triangle is a triad,
pointing one way for major chords and the other way for minor ones.  This
package computes that lattice and drives it in time from Standard MIDI Files,
leaving drawing and sound to whatever renderer and synth you plug in.

What it provides:

- **Closed-form lattice.** ``build_lattice()`` derives node positions, pitch
  classes, deduplicated edges and triad polarity directly from integer
  coordinates.  Identities are structured keys (``NodeKey``, ``TriadKey``), so
  every lookup is a dictionary read.
- **MIDI file decoding.** ``tonnetz.midi_file.parse()`` reads format 0 and 1
  files into time-ordered note-on events with a single effective tempo.
- **Cancellable playback.** ``PlaybackScheduler`` turns tick times into a
  wall-clock timeline on asyncio.  Starting a new session always cancels the
  previous one first.
- **Timed highlights.** ``Highlighter`` lights a node or triad for a fixed
  window and reverts it on schedule; retriggering restarts the window.
- **Pluggable collaborators.** Renderers implement ``RenderSink``, audio engines
  implement ``AudioSink``.  An OSC renderer bridge and a MIDI-output tone
  player are included.

Minimal example:

    ```python
    import asyncio
    import tonnetz

    async def main () -> None:
        async with tonnetz.TonnetzSession(tonnetz.load_config()) as session:
            session.load_midi_file("chorale.mid")
            await session.play()

    asyncio.run(main())
    ```

Package-level exports: ``TonnetzSession``, ``build_lattice``, ``NodeKey``,
``TriadKey``, ``PlaybackScheduler``, ``load_config``.
"""

import tonnetz.config
import tonnetz.lattice
import tonnetz.scheduler
import tonnetz.session


TonnetzSession = tonnetz.session.TonnetzSession
build_lattice = tonnetz.lattice.build_lattice
NodeKey = tonnetz.lattice.NodeKey
TriadKey = tonnetz.lattice.TriadKey
PlaybackScheduler = tonnetz.scheduler.PlaybackScheduler
load_config = tonnetz.config.load_config
