"""
Pygame-based playback for synthesized speech.

Architecture:
- GUI thread: asks Coqui-TTS for audio (on a worker thread) and queues the WAV bytes
- Playback thread: owns the pygame mixer and plays clips one at a time

Audio Pipeline:
  Coqui-TTS WAV -> pygame.mixer.Sound (direct playback)
"""

import io
import queue
import threading
from typing import Optional

from core.logger import log_info, log_error


# =============================================================================
# CONFIGURATION
# =============================================================================
PYGAME_BUFFER = 512
MASTER_VOLUME = 0.8
POLL_INTERVAL_MS = 50


class TTSPlayer:
    """
    Plays WAV clips in a daemon thread.

    The mixer is initialized lazily on the playback thread the first time a
    clip is queued, so importing this module never touches the audio device.
    """

    def __init__(self):
        self._queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._shutdown = False

    def _ensure_started(self) -> bool:
        with self._lock:
            if self._shutdown:
                return False
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run,
                    daemon=True,
                    name="TTSPlayback"
                )
                self._thread.start()
            return True

    def _run(self) -> None:
        """Playback thread body."""
        import pygame

        try:
            pygame.mixer.init(buffer=PYGAME_BUFFER)
            log_info("Pygame mixer initialized", prefix="[TTS]")
        except Exception as e:
            log_error(f"Failed to initialize pygame mixer: {e}", prefix="[TTS]")
            return

        while True:
            audio = self._queue.get()
            if audio is None:
                break

            self._stop_event.clear()
            try:
                sound = pygame.mixer.Sound(file=io.BytesIO(audio))
                sound.set_volume(MASTER_VOLUME)
                channel = sound.play()

                # Wait for playback to complete
                while channel is not None and channel.get_busy():
                    if self._stop_event.is_set():
                        channel.stop()
                        break
                    pygame.time.wait(POLL_INTERVAL_MS)
            except Exception as e:
                log_error(f"Playback error: {e}", prefix="[TTS]")

        try:
            pygame.mixer.quit()
        except Exception as e:
            log_error(f"Mixer shutdown error: {e}", prefix="[TTS]")

    def play(self, audio: bytes) -> bool:
        """
        Queue a WAV clip.

        Returns:
            True if the clip was queued
        """
        if not audio:
            return False
        if not self._ensure_started():
            return False
        self._queue.put(audio)
        return True

    def stop(self) -> None:
        """Stop the current clip and drop anything queued."""
        try:
            while True:
                self._queue.get_nowait()
        except queue.Empty:
            pass
        self._stop_event.set()

    def shutdown(self) -> None:
        """Stop playback and end the playback thread."""
        with self._lock:
            self._shutdown = True
            thread = self._thread
        self.stop()
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            thread.join(timeout=3)
        log_info("TTS playback shutdown complete", prefix="[TTS]")

    @staticmethod
    def is_available() -> bool:
        """Check if pygame is installed."""
        try:
            import pygame  # noqa: F401
        except ImportError:
            return False
        return True


# =============================================================================
# GLOBAL INSTANCE AND PUBLIC API
# =============================================================================
_player: Optional[TTSPlayer] = None


def get_tts_player() -> TTSPlayer:
    """Get the global TTS player instance."""
    global _player
    if _player is None:
        _player = TTSPlayer()
    return _player


def play_tts(audio: bytes) -> bool:
    """
    Play synthesized speech. Main entry point.

    Args:
        audio: WAV bytes from Coqui-TTS

    Returns:
        True if playback was queued
    """
    return get_tts_player().play(audio)


def stop_tts():
    """Stop current TTS playback."""
    if _player is not None:
        _player.stop()


def is_tts_available() -> bool:
    """Check if audio playback is possible."""
    return TTSPlayer.is_available()


def shutdown_tts():
    """Shutdown TTS playback (call on app exit)."""
    global _player
    if _player is not None:
        _player.shutdown()
        _player = None
