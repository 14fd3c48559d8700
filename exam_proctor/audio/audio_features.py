"""
Audio feature extraction module.

Computes the RMS energy of one fixed-size time-domain window.  Samples
are expected normalized to ``[-1, 1]`` (sounddevice float32).
"""

from __future__ import annotations

import librosa
import numpy as np


def rms_energy(window: np.ndarray) -> float:
    """Root-mean-square over the whole window as a single frame."""
    y = np.asarray(window, dtype=np.float32).ravel()
    if y.size == 0:
        return 0.0
    rms = librosa.feature.rms(
        y=y, frame_length=y.size, hop_length=y.size, center=False,
    )
    return float(rms[0, 0])
