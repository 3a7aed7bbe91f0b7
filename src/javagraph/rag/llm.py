"""Text completion through Gemini on Vertex AI."""

import logging
from typing import Protocol

from google import genai

logger = logging.getLogger(__name__)


class Completer(Protocol):
    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        ...


class GeminiCompleter:
    """Send a prompt to a Gemini model and return the text answer."""

    DEFAULT_SYSTEM_PROMPT = (
        "You are an expert Java code analyst. Explain code precisely, "
        "referring to the method and class names you are given."
    )

    def __init__(
        self,
        project_id: str,
        location: str = "us-central1",
        model: str = "gemini-2.5-flash",
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.3,
    ):
        self.model = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.client = genai.Client(
            vertexai=True,
            project=project_id,
            location=location,
        )

    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        logger.debug("Calling %s with prompt length %d chars", self.model, len(prompt))
        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config={
                "system_instruction": self.system_prompt,
                "temperature": self.temperature,
                "max_output_tokens": max_tokens,
            },
        )
        text = response.text or ""
        logger.debug("Response received, length %d chars", len(text))
        return text
