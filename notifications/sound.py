"""Synthesized two-tone notification cue"""
import io
import math
import sys
import wave
from array import array
from functools import lru_cache

SAMPLE_RATE = 44100
CUE_DURATION = 0.3
FIRST_TONE_HZ = 800.0
SECOND_TONE_HZ = 600.0
TONE_SWITCH_AT = 0.1
START_GAIN = 0.3
END_GAIN = 0.01


def cue_samples(sample_rate: int = SAMPLE_RATE) -> array:
    """16-bit samples: 800 Hz then 600 Hz, gain decaying exponentially 0.3 -> 0.01"""
    samples = array("h")
    total = int(sample_rate * CUE_DURATION)
    phase = 0.0
    for n in range(total):
        t = n / sample_rate
        frequency = FIRST_TONE_HZ if t < TONE_SWITCH_AT else SECOND_TONE_HZ
        gain = START_GAIN * (END_GAIN / START_GAIN) ** (t / CUE_DURATION)
        samples.append(int(32767 * gain * math.sin(phase)))
        # keep the phase continuous across the frequency switch
        phase += 2 * math.pi * frequency / sample_rate
    return samples


@lru_cache(maxsize=4)
def render_notification_cue(sample_rate: int = SAMPLE_RATE) -> bytes:
    """The cue as a mono WAV file"""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        samples = cue_samples(sample_rate)
        if sys.byteorder == "big":
            samples.byteswap()
        wav.writeframes(samples.tobytes())
    return buffer.getvalue()
