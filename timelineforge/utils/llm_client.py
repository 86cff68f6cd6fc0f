import logging
from typing import Optional

from google import genai
from google.genai import types

from timelineforge.config import settings
from timelineforge.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

_client: Optional[genai.Client] = None


def _get_client() -> genai.Client:
    global _client
    if not settings.gemini_api_key:
        raise UpstreamServiceError("GEMINI_API_KEY is not set; analysis service not configured")
    if _client is None:
        _client = genai.Client(api_key=settings.gemini_api_key)
    return _client


def _generate(contents, temperature: float, max_output_tokens: int, top_p: Optional[float] = None) -> str:
    client = _get_client()
    try:
        response = client.models.generate_content(
            model=settings.gemini_model,
            contents=contents,
            config=types.GenerateContentConfig(
                temperature=temperature,
                top_p=top_p,
                max_output_tokens=max_output_tokens,
            )
        )
    except Exception as e:
        raise UpstreamServiceError(f"Gemini request failed: {e}") from e

    if not response or not response.text:
        logger.warning("Empty response from Gemini")
        return ""

    return response.text.strip()


def llm_complete(prompt: str, temperature: float = 0.3, max_output_tokens: int = 4096) -> str:
    """
    Single text-only Gemini call.
    Raises UpstreamServiceError when the service is unconfigured or fails;
    returns "" when the model replies with no text.
    """
    return _generate(prompt, temperature=temperature, max_output_tokens=max_output_tokens)


def llm_complete_with_image(
    prompt: str,
    image_bytes: bytes,
    mime_type: str = "image/jpeg",
    extra_prompt: Optional[str] = None,
    temperature: float = 0.2,
    max_output_tokens: int = 4096
) -> str:
    """Gemini call with one inline image part."""
    contents = [
        prompt,
        types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
    ]
    if extra_prompt:
        contents.append(extra_prompt)
    return _generate(
        contents,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        top_p=0.8,
    )
