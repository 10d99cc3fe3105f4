"""Reflection: turning episodic noise into candidate semantic facts."""

import logging
import time
from typing import Callable, List, Optional, Sequence

from ami.exceptions import ProviderError
from ami.memory.schema import Memory
from ami.models import get_model_params, parse_model_string

logger = logging.getLogger(__name__)

DEFAULT_REFLECTION_MODEL = "ollama:qwen2.5-coder:1.5b"
MAX_ATTEMPTS = 3
REQUEST_TIMEOUT = 30

FACT_EXTRACTION_PROMPT = """
Extract technical decisions, architecture patterns, and user preferences from the following log.
Format each as a concise fact. Ignore greetings and meta-talk.
Provide each fact on a new line starting with "- ".

Log Content:
---
{content}
---
Facts:"""

SYNTHESIS_PROMPT = """Review the above memories and suggest 1-3 Semantic Facts that:
  • Capture the essential knowledge
  • Eliminate redundant detail
  • Maintain high information density

For each suggested fact, provide:
  1. Title (short, descriptive)
  2. Content (concise, definitive statement)
  3. Related memory IDs (for traceability)

Example:
  Fact 1:
    Title: Binary embedding storage
    Content: Embeddings are stored as little-endian float32 BLOBs,
               keeping full precision for semantic search.
    Related: abc-123, def-456"""


def generate(
    prompt: str,
    model: str = DEFAULT_REFLECTION_MODEL,
    attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Run a single-shot completion with bounded retry.

    Waits 1s after the first failure, 2s after the second (linear backoff),
    and raises ProviderError once every attempt has failed.

    Args:
        prompt: Prompt text
        model: Provider-qualified model string
        attempts: Maximum number of attempts
        sleep: Sleep function (injectable for tests)

    Returns:
        The generated text
    """
    import litellm

    params = get_model_params(model)
    provider = parse_model_string(model)[0]
    last_error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            response = litellm.completion(
                messages=[{"role": "user", "content": prompt}],
                timeout=REQUEST_TIMEOUT,
                **params,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            last_error = e
            logger.debug(f"Generation attempt {attempt + 1}/{attempts} failed: {e}")
            if attempt < attempts - 1:
                sleep(attempt + 1)

    raise ProviderError(
        f"{provider} request failed after {attempts} attempts: {last_error}",
        provider=provider,
        attempts=attempts,
    )


def parse_facts(response: str) -> List[str]:
    """Keep only lines of the form "- fact", stripped of the marker."""
    facts = []
    for line in response.splitlines():
        line = line.strip()
        if line.startswith("- "):
            facts.append(line[2:])
    return facts


def extract_facts(
    raw_content: str,
    model: str = DEFAULT_REFLECTION_MODEL,
    generator: Optional[Callable[[str], str]] = None,
) -> List[str]:
    """Ask the local model to distill raw text into a list of concise facts."""
    prompt = FACT_EXTRACTION_PROMPT.format(content=raw_content)
    response = generator(prompt) if generator else generate(prompt, model)
    return parse_facts(response)


def format_reflection(memories: Sequence[Memory], hours: int) -> str:
    """Render recent episodic memories followed by the synthesis prompt."""
    lines = [f"Reflecting on {len(memories)} episodic memories from the last {hours} hour(s)", ""]
    for i, memory in enumerate(memories, 1):
        lines.append(f"{i}. [{memory.id[:8]}] {memory.content}")
        if memory.tags:
            lines.append(f"   Tags: {', '.join(memory.tags)}")
    lines.extend(["", "--- Synthesis Prompt ---", SYNTHESIS_PROMPT])
    return "\n".join(lines)
