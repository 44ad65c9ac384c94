"""
Prediction Output Normalizer
Extracts the usable output URL from a provider response.

Providers answer in one of three shapes:
    - a bare URL string
    - a list of outputs (several variations; only the first is authoritative)
    - a keyed object, with the URL under `url`, `image` or `output`, or failing
      that as the first string value starting with "http"

Anything else raises PredictionOutputError.
"""

from typing import Any, Optional

from app.core.exceptions import NonRetryableError

KNOWN_URL_KEYS = ("url", "image", "output")


class PredictionOutputError(NonRetryableError):
    """Raised when no output URL can be extracted from a prediction."""

    def __init__(self, message: str = "No output URL in prediction", output: Any = None):
        super().__init__(message)
        self.output = output


def _coerce(value: Any) -> Any:
    """Turn provider file objects (anything exposing a `url` attribute) into plain values."""
    if isinstance(value, (str, list, tuple, dict)) or value is None:
        return value
    url = getattr(value, "url", None)
    if callable(url):
        url = url()
    return url if isinstance(url, str) else value


def _from_mapping(output: dict) -> Optional[str]:
    for key in KNOWN_URL_KEYS:
        candidate = _coerce(output.get(key))
        if isinstance(candidate, str) and candidate:
            return candidate
        # e.g. {"output": ["https://..."]}
        if isinstance(candidate, (list, tuple)) and candidate:
            first = _coerce(candidate[0])
            if isinstance(first, str) and first:
                return first
    for value in output.values():
        value = _coerce(value)
        if isinstance(value, str) and value.startswith("http"):
            return value
    return None


def extract_output_url(output: Any) -> str:
    """
    Normalize a provider output into a single URL.

    Args:
        output: Raw prediction output

    Returns:
        The authoritative output URL

    Raises:
        PredictionOutputError: If no URL can be found
    """
    output = _coerce(output)

    if isinstance(output, str):
        if output.strip():
            return output.strip()
        raise PredictionOutputError("Prediction output is an empty string", output)

    if isinstance(output, (list, tuple)):
        if not output:
            raise PredictionOutputError("Prediction returned no outputs", output)
        first = _coerce(output[0])
        if isinstance(first, str) and first.strip():
            return first.strip()
        if isinstance(first, dict):
            url = _from_mapping(first)
            if url:
                return url
        raise PredictionOutputError("First prediction output has no URL", output)

    if isinstance(output, dict):
        url = _from_mapping(output)
        if url:
            return url
        raise PredictionOutputError(
            f"No URL found in prediction output keys: {sorted(output.keys())}", output
        )

    raise PredictionOutputError(
        f"Unsupported prediction output type: {type(output).__name__}", output
    )


def extract_output_urls(output: Any) -> list:
    """All string URLs in a list output (used for logging variation counts)."""
    output = _coerce(output)
    if isinstance(output, (list, tuple)):
        return [u for u in (_coerce(item) for item in output) if isinstance(u, str)]
    try:
        return [extract_output_url(output)]
    except PredictionOutputError:
        return []
