"""Model adapters for AMI's embedding and text-generation providers."""

import os
from typing import Optional


def parse_model_string(model_string: str) -> tuple[str, str, Optional[str]]:
    """Parse AMI model string format.

    Args:
        model_string: Format like "ollama:qwen2.5-coder:1.5b" or "openai:text-embedding-3-small"

    Returns:
        Tuple of (provider, model_name, variant)
    """
    parts = model_string.split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid model string format: {model_string}")

    provider = parts[0]
    model_name = parts[1]
    variant = parts[2] if len(parts) > 2 else None

    return provider, model_name, variant


def get_model_params(model_string: str, **kwargs) -> dict:
    """Get parameters for direct litellm calls (completion and embedding).

    Args:
        model_string: Model specification like "openai:text-embedding-3-small"
        **kwargs: Additional parameters passed through untouched

    Returns:
        Dict with "model" key and all parameters ready for litellm

    Examples:
        >>> params = get_model_params("ollama:qwen2.5-coder:1.5b")
        >>> params["model"]
        'ollama/qwen2.5-coder:1.5b'
    """
    provider, model_name, variant = parse_model_string(model_string)

    params = dict(kwargs)

    if provider == "ollama":
        full_model_name = f"{model_name}:{variant}" if variant else model_name
        params["model"] = f"ollama/{full_model_name}"
        params.setdefault("api_base", os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"))

    elif provider == "openai":
        params["model"] = f"openai/{model_name}"
        if "api_key" not in params:
            params["api_key"] = os.getenv("OPENAI_API_KEY")

    elif provider == "anthropic":
        params["model"] = f"anthropic/{model_name}"
        if "api_key" not in params:
            params["api_key"] = os.getenv("ANTHROPIC_API_KEY")

    else:
        # Let litellm route anything else by its own provider prefix
        params["model"] = f"{provider}/{model_name}"

    return params


def provider_credential_missing(model_string: str) -> bool:
    """Check whether a hosted provider's API key is unset.

    Local providers (ollama, fastembed) never need one.
    """
    provider, _, _ = parse_model_string(model_string)
    env_vars = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}
    env_var = env_vars.get(provider)
    return bool(env_var) and not os.getenv(env_var)
