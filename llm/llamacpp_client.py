"""
AI Chat Overlay - Llama.cpp Client
HTTP client for the llama.cpp example server
"""

import requests
from typing import Optional, List
from dataclasses import dataclass


@dataclass
class LlamaCppResponse:
    """Response from the llama.cpp server."""
    text: str
    success: bool
    error: Optional[str] = None


class LlamaCppClient:
    """Client for llama.cpp's /health and /completion endpoints."""

    def __init__(
        self,
        api_url: str = "http://localhost:8080",
        n_predict: int = 512,
        temperature: float = 0.7,
        timeout: int = 120,
        probe_timeout: int = 5
    ):
        self.api_url = api_url.rstrip("/")
        self.n_predict = n_predict
        self.temperature = temperature
        self.timeout = timeout
        self.probe_timeout = probe_timeout

    def health(self) -> bool:
        """Check if the server is up and has a model loaded."""
        try:
            response = requests.get(f"{self.api_url}/health", timeout=self.probe_timeout)
            return response.status_code == 200
        except Exception:
            return False

    def complete(self, prompt: str, stop: Optional[List[str]] = None) -> LlamaCppResponse:
        """
        Generate a completion (POST /completion).

        Args:
            prompt: Text to complete
            stop: Stop sequences (defaults to a blank line)

        Returns:
            LlamaCppResponse with the generated text
        """
        payload = {
            "prompt": prompt,
            "n_predict": self.n_predict,
            "temperature": self.temperature,
            "stop": stop if stop is not None else ["\n\n"]
        }

        try:
            response = requests.post(
                f"{self.api_url}/completion",
                json=payload,
                timeout=self.timeout
            )

            if response.status_code == 200:
                data = response.json()
                return LlamaCppResponse(text=data.get("content", "").strip(), success=True)

            return LlamaCppResponse(
                text="",
                success=False,
                error=f"HTTP {response.status_code}: {response.text}"
            )

        except requests.Timeout:
            return LlamaCppResponse(text="", success=False, error="Request timed out")
        except requests.ConnectionError:
            return LlamaCppResponse(
                text="", success=False, error="Connection failed - is Llama.cpp running?"
            )
        except Exception as e:
            return LlamaCppResponse(text="", success=False, error=str(e))

    def validate_connection(self) -> tuple[bool, str]:
        """
        Validate the connection and return status.

        Returns:
            Tuple of (is_valid, status_message)
        """
        if self.health():
            return True, "Connected to Llama.cpp"
        return False, "Llama.cpp not responding"
