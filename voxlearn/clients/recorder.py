"""
Microphone capture via sounddevice.

Records 16 kHz mono float32 from the default (or named) input device and
writes a PCM_16 WAV file on stop.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Iterator, List, Optional

import numpy as np
import soundfile as sf

from . import Recorder
from ..effects import CancelToken
from ..types import Meter


DEFAULT_BLOCKSIZE = 1024
METER_INTERVAL = 0.1  # seconds between level samples
SILENCE_FLOOR_DB = -160.0


def block_meter(audio: np.ndarray) -> Meter:
    """RMS and peak of one block, in dBFS."""
    if len(audio) == 0:
        return Meter(average_power=SILENCE_FLOOR_DB, peak_power=SILENCE_FLOOR_DB)

    rms = float(np.sqrt(np.mean(audio ** 2)))
    peak = float(np.max(np.abs(audio)))
    return Meter(average_power=_to_db(rms), peak_power=_to_db(peak))


def _to_db(value: float) -> float:
    if value <= 0:
        return SILENCE_FLOOR_DB
    return max(SILENCE_FLOOR_DB, 20 * float(np.log10(value)))


class SoundDeviceRecorder(Recorder):
    """
    Single-mic recorder.

    The input stream is opened on start and closed on stop; the audio
    callback only appends blocks and updates the latest meter under a lock.

    Usage:
        recorder = SoundDeviceRecorder(output_dir=config.data_dir / "tmp")
        recorder.start_recording()
        path = recorder.stop_recording()
    """

    def __init__(
        self,
        output_dir: Path,
        device: Optional[str] = None,
        sample_rate: int = 16000,
    ):
        self.output_dir = output_dir
        self.device = device
        self.sample_rate = sample_rate

        self._stream = None
        self._blocks: List[np.ndarray] = []
        self._meter = Meter(average_power=SILENCE_FLOOR_DB, peak_power=SILENCE_FLOOR_DB)
        self._lock = threading.Lock()

    def start_recording(self) -> None:
        import sounddevice as sd

        with self._lock:
            if self._stream is not None:
                return
            self._blocks = []

        stream = sd.InputStream(
            device=self._find_device(),
            samplerate=self.sample_rate,
            channels=1,
            dtype=np.float32,
            blocksize=DEFAULT_BLOCKSIZE,
            callback=self._audio_callback,
        )
        stream.start()

        with self._lock:
            self._stream = stream
        print("[Recorder] Recording started")

    def stop_recording(self) -> Path:
        with self._lock:
            stream = self._stream
            self._stream = None
            blocks = self._blocks
            self._blocks = []

        # Close outside the lock to avoid deadlock with the audio callback
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                print(f"[Recorder] Error closing stream: {e}")

        audio = np.concatenate(blocks) if blocks else np.array([], dtype=np.float32)
        return self._write_wav(audio)

    def observe_audio_level(self, token: CancelToken) -> Iterator[Meter]:
        while not token.wait(METER_INTERVAL):
            with self._lock:
                meter = self._meter
            yield meter

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            print(f"[Recorder] Callback status: {status}")

        audio = indata.copy().flatten()
        meter = block_meter(audio)

        with self._lock:
            self._meter = meter
            if self._stream is not None:
                self._blocks.append(audio)

    def _write_wav(self, audio: np.ndarray) -> Path:
        """Atomic write: temp file in the output dir, then replace."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        audio_int16 = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)

        fd, temp_path = tempfile.mkstemp(dir=self.output_dir, suffix=".wav.tmp")
        wav_path = Path(temp_path[: -len(".tmp")])
        try:
            os.close(fd)
            sf.write(temp_path, audio_int16, self.sample_rate, format="WAV", subtype="PCM_16")
            os.replace(temp_path, wav_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        print(f"[Recorder] Saved {len(audio) / self.sample_rate:.1f}s to {wav_path.name}")
        return wav_path

    def _find_device(self) -> Optional[int]:
        """Find input device index by name (substring match). None = default."""
        if not self.device:
            return None

        import sounddevice as sd

        wanted = self.device.lower()
        for i, d in enumerate(sd.query_devices()):
            if d["max_input_channels"] > 0 and wanted in d["name"].lower():
                return i

        print(f"[Recorder] Mic not found: {self.device}, using default")
        return None
