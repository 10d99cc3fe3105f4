"""Embedding generation for semantic recall.

Model strings follow the ``provider:model`` format used elsewhere:

- ``openai:text-embedding-3-small`` goes through litellm and needs OPENAI_API_KEY
- ``fastembed:BAAI/bge-small-en-v1.5`` runs locally (pip install ami[fastembed])
"""

import logging
from typing import List, Optional

from ami.exceptions import ProviderError
from ami.models import get_model_params, parse_model_string, provider_credential_missing

logger = logging.getLogger(__name__)

# Lazy-loaded local model
_embedding_model = None
_model_name: Optional[str] = None


def _fastembed_embedding(text: str, model_name: str) -> List[float]:
    global _embedding_model, _model_name

    # Lazy load model, reload if model name changed
    if _embedding_model is None or _model_name != model_name:
        try:
            from fastembed import TextEmbedding
        except ImportError as e:
            raise ProviderError(
                "fastembed is required for local embeddings. Install with: pip install fastembed",
                provider="fastembed",
            ) from e

        _embedding_model = TextEmbedding(model_name=model_name)
        _model_name = model_name

    return list(_embedding_model.embed([text]))[0].tolist()


def _litellm_embedding(text: str, model_string: str) -> List[float]:
    import litellm

    params = get_model_params(model_string)
    response = litellm.embedding(input=[text], **params)
    item = response.data[0]
    vector = item["embedding"] if isinstance(item, dict) else item.embedding
    return [float(x) for x in vector]


def is_configured(model_string: Optional[str]) -> bool:
    """Whether embeddings can be attempted for this model without a missing credential."""
    if not model_string:
        return False
    try:
        return not provider_credential_missing(model_string)
    except ValueError:
        return False


def get_embedding(text: str, model_string: str = "openai:text-embedding-3-small") -> List[float]:
    """Generate an embedding vector for text.

    Args:
        text: Text to embed
        model_string: Provider-qualified model name

    Returns:
        List of floats (embedding vector)

    Raises:
        ProviderError: If no credential is configured or the provider call fails
    """
    try:
        provider, model_name, variant = parse_model_string(model_string)
    except ValueError as e:
        raise ProviderError(str(e)) from e

    if provider == "fastembed":
        name = f"{model_name}:{variant}" if variant else model_name
        try:
            return _fastembed_embedding(text, name)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"fastembed embedding failed: {e}", provider=provider) from e

    if provider_credential_missing(model_string):
        raise ProviderError(f"no API key configured for {provider} embeddings", provider=provider)

    try:
        return _litellm_embedding(text, model_string)
    except Exception as e:
        raise ProviderError(f"embedding request failed: {e}", provider=provider) from e
