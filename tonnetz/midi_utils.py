import logging
import typing

import mido

logger = logging.getLogger(__name__)


def select_output_device(device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:
    """
    Select and open a MIDI output device for tone playback.

    If `device_name` is provided, opens that device when it exists.
    If `device_name` is None, uses the only available device; with several
    devices nothing is opened and the names are logged so one can be chosen
    in the configuration.

    Never raises: playback tones are best-effort.

    Returns:
        A tuple of (device_name, midi_out_object) or (None, None) on failure.
    """
    try:
        outputs = mido.get_output_names()
        logger.info(f"Available MIDI outputs: {outputs}")

        if not outputs:
            logger.warning("No MIDI output devices found - tones are disabled.")
            return None, None

        if device_name is not None:
            if device_name not in outputs:
                logger.error(
                    f"MIDI output device '{device_name}' not found. "
                    f"Available devices: {outputs}"
                )
                return None, None

            midi_out = mido.open_output(device_name)
            logger.info(f"Opened MIDI output: {device_name}")
            return device_name, midi_out

        if len(outputs) == 1:
            selected_name = outputs[0]
            midi_out = mido.open_output(selected_name)
            logger.info(f"One MIDI output found - using '{selected_name}'")
            return selected_name, midi_out

        logger.warning(
            f"Several MIDI outputs found and none configured - tones are disabled. "
            f"Set midi_output.device_name to one of: {outputs}"
        )
        return None, None

    except Exception as e:
        logger.error(f"Failed to open MIDI output: {e}")
        return None, None
