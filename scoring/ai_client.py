"""
Gemini client for the AI scoring opinion.

The collaborator is optional: without the ``google-generativeai`` package or
an API key the classifier reports itself unavailable and the pattern engine
becomes the only opinion.
"""

import logging
import time
from typing import Optional

from scoring.ai_response import AIParseResult, ParseError, parse_ai_response

try:
    import google.generativeai as genai
    from google.generativeai.types import GenerationConfig
    GOOGLE_AVAILABLE = True
except ImportError:
    genai = None
    GenerationConfig = None
    GOOGLE_AVAILABLE = False

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"
MAX_ATTEMPTS = 3


class AIUnavailableError(RuntimeError):
    """The generative model cannot be called (package or key missing)."""


class GeminiClassifier:
    """Calls Gemini with retry and parses the reply into a tagged result."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_output_tokens: int = 4096,
        temperature: float = 0.2,
        sleep=time.sleep,
    ):
        self.api_key = api_key
        self.model_name = model
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self._sleep = sleep
        self._model = None

    @property
    def available(self) -> bool:
        return GOOGLE_AVAILABLE and bool(self.api_key)

    def _get_model(self):
        if self._model is None:
            if not GOOGLE_AVAILABLE:
                raise AIUnavailableError("google-generativeai package not installed")
            if not self.api_key:
                raise AIUnavailableError("Gemini API key not configured")
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    def generate(self, prompt: str) -> str:
        """Return the raw model text; retries with 1s then 2s backoff."""
        model = self._get_model()
        config = GenerationConfig(max_output_tokens=self.max_output_tokens, temperature=self.temperature)
        last_error = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = model.generate_content(prompt, generation_config=config)
                return response.text
            except Exception as e:
                last_error = e
                logger.warning(f"Gemini attempt {attempt}/{MAX_ATTEMPTS} failed: {e}")
                if attempt < MAX_ATTEMPTS:
                    self._sleep(2 ** (attempt - 1))
        raise RuntimeError(f"Gemini API failed after {MAX_ATTEMPTS} attempts: {last_error}")

    def classify(self, prompt: str) -> AIParseResult:
        """Score the prompt; any failure comes back as ``ParseError``."""
        try:
            text = self.generate(prompt)
        except AIUnavailableError as e:
            return ParseError(f"AI unavailable: {e}")
        except RuntimeError as e:
            logger.error(f"AI analysis request failed: {e}")
            return ParseError(str(e))
        return parse_ai_response(text)
