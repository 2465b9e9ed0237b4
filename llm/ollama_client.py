"""
AI Chat Overlay - Ollama Client
HTTP client for a local Ollama daemon
"""

import requests
from typing import Optional, List
from dataclasses import dataclass, field


@dataclass
class OllamaResponse:
    """Response from the Ollama API."""
    text: str
    success: bool
    error: Optional[str] = None


@dataclass
class OllamaModels:
    """Models installed in the Ollama daemon."""
    models: List[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


class OllamaClient:
    """
    Client for the Ollama REST API.

    Single request per call, no streaming and no retries.
    """

    def __init__(
        self,
        api_url: str = "http://localhost:11434",
        timeout: int = 120,
        probe_timeout: int = 5
    ):
        """
        Initialize the Ollama client.

        Args:
            api_url: Base URL of the Ollama daemon
            timeout: Generation request timeout in seconds
            probe_timeout: Model listing timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def list_models(self) -> OllamaModels:
        """Fetch installed model names (GET /api/tags)."""
        try:
            response = requests.get(f"{self.api_url}/api/tags", timeout=self.probe_timeout)
            if response.status_code != 200:
                return OllamaModels(success=False, error=f"HTTP {response.status_code}: {response.text}")
            data = response.json()
            names = [m.get("name", "") for m in data.get("models", []) if m.get("name")]
            return OllamaModels(models=names)
        except requests.Timeout:
            return OllamaModels(success=False, error="Request timed out")
        except requests.ConnectionError:
            return OllamaModels(success=False, error="Connection failed - is Ollama running?")
        except Exception as e:
            return OllamaModels(success=False, error=str(e))

    def generate(self, model: str, prompt: str) -> OllamaResponse:
        """
        Generate a reply (POST /api/generate, non-streaming).

        Args:
            model: Installed model name
            prompt: User prompt

        Returns:
            OllamaResponse with the generated text
        """
        if not model:
            return OllamaResponse(text="", success=False, error="Please select an Ollama model")

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False
        }

        try:
            response = requests.post(
                f"{self.api_url}/api/generate",
                json=payload,
                timeout=self.timeout
            )

            if response.status_code == 200:
                data = response.json()
                return OllamaResponse(text=data.get("response", "").strip(), success=True)

            return OllamaResponse(
                text="",
                success=False,
                error=f"HTTP {response.status_code}: {response.text}"
            )

        except requests.Timeout:
            return OllamaResponse(text="", success=False, error="Request timed out")
        except requests.ConnectionError:
            return OllamaResponse(text="", success=False, error="Connection failed - is Ollama running?")
        except Exception as e:
            return OllamaResponse(text="", success=False, error=str(e))

    def validate_connection(self) -> tuple[bool, str]:
        """
        Validate the connection and return status.

        Returns:
            Tuple of (is_valid, status_message)
        """
        result = self.list_models()
        if result.success:
            return True, f"Connected to Ollama ({len(result.models)} models)"
        return False, result.error or "Ollama not responding"
