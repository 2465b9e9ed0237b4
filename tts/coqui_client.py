"""
AI Chat Overlay - Coqui-TTS Client
HTTP client for the Coqui-TTS demo server
"""

import requests
from typing import Optional, List
from dataclasses import dataclass, field


@dataclass
class SpeechResult:
    """Synthesized audio, or the reason there is none."""
    audio: bytes
    success: bool
    error: Optional[str] = None


@dataclass
class CoquiModels:
    """Voices/models the TTS server offers."""
    models: List[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


class CoquiClient:
    """Client for the Coqui-TTS /api/tts endpoint."""

    def __init__(
        self,
        api_url: str = "http://localhost:5002",
        timeout: int = 120,
        probe_timeout: int = 5
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def list_models(self) -> CoquiModels:
        """Fetch available models (GET /api/tts)."""
        try:
            response = requests.get(f"{self.api_url}/api/tts", timeout=self.probe_timeout)
            if response.status_code != 200:
                return CoquiModels(success=False, error=f"HTTP {response.status_code}: {response.text}")
            data = response.json()
            models = data.get("models", []) if isinstance(data, dict) else []
            return CoquiModels(models=[str(m) for m in models])
        except requests.Timeout:
            return CoquiModels(success=False, error="Request timed out")
        except requests.ConnectionError:
            return CoquiModels(success=False, error="Connection failed - is Coqui-TTS running?")
        except ValueError:
            # Older servers answer GET /api/tts with HTML, not JSON
            return CoquiModels(success=False, error="Server did not return a model list")
        except Exception as e:
            return CoquiModels(success=False, error=str(e))

    def synthesize(self, text: str, model_name: str) -> SpeechResult:
        """
        Turn text into WAV audio (POST /api/tts).

        Args:
            text: Text to speak
            model_name: Selected TTS model

        Returns:
            SpeechResult with the audio bytes
        """
        if not model_name:
            return SpeechResult(audio=b"", success=False, error="Please select a TTS model")
        if not text.strip():
            return SpeechResult(audio=b"", success=False, error="Nothing to speak")

        try:
            response = requests.post(
                f"{self.api_url}/api/tts",
                json={"text": text, "model_name": model_name},
                timeout=self.timeout
            )

            if response.status_code == 200:
                return SpeechResult(audio=response.content, success=True)

            return SpeechResult(
                audio=b"",
                success=False,
                error=f"HTTP {response.status_code}: {response.text}"
            )

        except requests.Timeout:
            return SpeechResult(audio=b"", success=False, error="Request timed out")
        except requests.ConnectionError:
            return SpeechResult(audio=b"", success=False, error="Connection failed - is Coqui-TTS running?")
        except Exception as e:
            return SpeechResult(audio=b"", success=False, error=str(e))

    def validate_connection(self) -> tuple[bool, str]:
        """
        Validate the connection and return status.

        Returns:
            Tuple of (is_valid, status_message)
        """
        result = self.list_models()
        if result.success:
            return True, f"Connected to Coqui-TTS ({len(result.models)} models)"
        return False, result.error or "Coqui-TTS not responding"
