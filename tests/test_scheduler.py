import asyncio
import logging
import time
import typing

import pytest

import tonnetz.scheduler

from tonnetz.midi_file import MidiEvent


# At 6000 BPM and 480 ticks per beat one tick lasts 1/48000 s, so 480 ticks = 10 ms.
FAST_TEMPO = 6000
TICKS = 480


def _events (*ticks: int, first_note: int = 60) -> typing.List[MidiEvent]:

	return [MidiEvent(note=first_note + n, velocity=100, time=t) for n, t in enumerate(ticks)]


def test_ticks_to_seconds () -> None:

	"""One beat at 120 BPM lasts half a second."""

	assert tonnetz.scheduler.ticks_to_seconds(480, 120, 480) == pytest.approx(0.5)
	assert tonnetz.scheduler.ticks_to_seconds(960, 120, 480) == pytest.approx(1.0)
	assert tonnetz.scheduler.ticks_to_seconds(96, 60, 96) == pytest.approx(1.0)
	assert tonnetz.scheduler.ticks_to_seconds(0, 120, 480) == 0.0


def test_schedule_computes_offsets () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	scheduler.schedule(_events(0, 480, 960), 120, 480, lambda event: None)

	offsets = sorted(trigger.offset for trigger in scheduler._queue)

	assert offsets == pytest.approx([0.0, 0.5, 1.0])
	assert scheduler.pending == 3


@pytest.mark.parametrize("tempo, ticks_per_beat", [
	(None, None),
	(0, 0),
	(-10, -480),
])
def test_schedule_falls_back_to_defaults (tempo: typing.Any, ticks_per_beat: typing.Any) -> None:

	"""Unusable tempo and division values never raise; 120 BPM and 480 ticks are used."""

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	scheduler.schedule(_events(480), tempo, ticks_per_beat, lambda event: None)

	assert scheduler.tempo == 120
	assert scheduler.ticks_per_beat == 480
	assert scheduler._queue[0].offset == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_play_fires_every_event_in_time_order () -> None:

	"""Events with identical tick times all fire; none are dropped."""

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	fired: typing.List[MidiEvent] = []

	events = _events(0, 0, 0, 480, 480, 960)
	scheduler.schedule(events, FAST_TEMPO, TICKS, fired.append)
	await scheduler.play()

	assert sorted(e.note for e in fired) == [e.note for e in events]
	assert [e.time for e in fired] == [0, 0, 0, 480, 480, 960]
	assert scheduler.pending == 0
	assert not scheduler.running


@pytest.mark.asyncio
async def test_triggers_do_not_fire_early () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	fired_at: typing.List[typing.Tuple[float, float]] = []

	def on_trigger (event: MidiEvent) -> None:
		expected = tonnetz.scheduler.ticks_to_seconds(event.time, FAST_TEMPO, TICKS)
		fired_at.append((time.perf_counter() - scheduler.start_time, expected))

	scheduler.schedule(_events(0, 960, 2400), FAST_TEMPO, TICKS, on_trigger)
	await scheduler.play()

	assert len(fired_at) == 3

	for elapsed, expected in fired_at:
		assert elapsed >= expected - 0.001


@pytest.mark.asyncio
async def test_cancel_voids_pending_triggers () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	fired: typing.List[int] = []

	scheduler.schedule(_events(0, 9600), FAST_TEMPO, TICKS, lambda event: fired.append(event.note))
	await scheduler.start()
	await asyncio.sleep(0.03)

	scheduler.cancel()

	assert scheduler.pending == 0
	assert not scheduler.running

	await asyncio.sleep(0.25)

	assert fired == [60]


@pytest.mark.asyncio
async def test_new_session_replaces_pending_session () -> None:

	"""Only the second session's triggers fire once it has been scheduled."""

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	fired: typing.List[str] = []

	scheduler.schedule(_events(2400, 4800, 7200), FAST_TEMPO, TICKS, lambda event: fired.append(f"first:{event.note}"))
	first_session = scheduler.session
	await scheduler.start()
	await asyncio.sleep(0.01)

	scheduler.schedule(_events(0, 480, first_note=72), FAST_TEMPO, TICKS, lambda event: fired.append(f"second:{event.note}"))
	await scheduler.start()

	assert scheduler.session != first_session

	await scheduler.wait()
	await asyncio.sleep(0.2)

	assert fired == ["second:72", "second:73"]


@pytest.mark.asyncio
async def test_stop_waits_for_the_task () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()

	scheduler.schedule(_events(0, 48000), FAST_TEMPO, TICKS, lambda event: None)
	await scheduler.start()
	await asyncio.sleep(0.01)
	await scheduler.stop()

	assert not scheduler.running
	assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_playback (caplog: pytest.LogCaptureFixture) -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	fired: typing.List[int] = []

	def on_trigger (event: MidiEvent) -> None:
		if event.note == 60:
			raise RuntimeError("renderer gone")
		fired.append(event.note)

	scheduler.schedule(_events(0, 480), FAST_TEMPO, TICKS, on_trigger)

	with caplog.at_level(logging.ERROR, logger="tonnetz.scheduler"):
		await scheduler.play()

	assert fired == [61]
	assert "Trigger callback failed" in caplog.text


@pytest.mark.asyncio
async def test_lifecycle_events () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	seen: typing.List[str] = []

	scheduler.on_event("start", lambda: seen.append("start"))
	scheduler.on_event("trigger", lambda trigger: seen.append(f"trigger:{trigger.event.note}"))
	scheduler.on_event("complete", lambda: seen.append("complete"))
	scheduler.on_event("cancel", lambda: seen.append("cancel"))

	scheduler.schedule(_events(0, 480), FAST_TEMPO, TICKS, lambda event: None)
	await scheduler.play()

	assert seen == ["start", "trigger:60", "trigger:61", "complete"]

	scheduler.schedule(_events(48000), FAST_TEMPO, TICKS, lambda event: None)
	scheduler.cancel()

	assert seen[-1] == "cancel"


@pytest.mark.asyncio
async def test_no_trigger_event_after_callback_cancels () -> None:

	"""A callback that cancels playback leaves "cancel" as the last lifecycle event."""

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	seen: typing.List[str] = []

	scheduler.on_event("trigger", lambda trigger: seen.append(f"trigger:{trigger.event.note}"))
	scheduler.on_event("cancel", lambda: seen.append("cancel"))

	scheduler.schedule(_events(0, 480), FAST_TEMPO, TICKS, lambda event: scheduler.cancel())
	await scheduler.start()
	await asyncio.sleep(0.05)

	assert seen == ["cancel"]
	assert not scheduler.running


def test_unknown_lifecycle_event_raises () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()

	with pytest.raises(ValueError):
		scheduler.on_event("bar", lambda: None)


@pytest.mark.asyncio
async def test_start_without_schedule_is_ignored () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()

	await scheduler.start()

	assert not scheduler.running


@pytest.mark.asyncio
async def test_empty_schedule_completes () -> None:

	scheduler = tonnetz.scheduler.PlaybackScheduler()
	completed: typing.List[bool] = []

	scheduler.on_event("complete", lambda: completed.append(True))
	scheduler.schedule([], 120, 480, lambda event: None)
	await scheduler.play()

	assert completed == [True]
