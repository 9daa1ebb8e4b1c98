"""Shared Gemini calls with retry logic and hard timeouts.

call_llm_function() forces a single function call and returns its
arguments; embed_text() returns one embedding vector. Both retry transient
Vertex AI failures with tenacity, converting SDK exceptions to
TimeoutError / ConnectionError / OSError. Callers decide their own
final-failure policy.

run_with_timeout() bounds any blocking call: the caller stops waiting after
the deadline even if the SDK call itself keeps running in its worker thread.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, TypeVar

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from flowq.config import (
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_TIMEOUT_SECONDS,
    LLM_MAX_RETRIES,
    LLM_TIMEOUT_SECONDS,
)
from flowq.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from flowq.llm.gemini import get_embedding_model, get_gemini_model_with_options
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter

logger = get_logger(__name__)

T = TypeVar("T")

_TIMEOUT_POOL = ThreadPoolExecutor(max_workers=8, thread_name_prefix="flowq-external")


def run_with_timeout(func: Callable[..., T], timeout: float, *args: Any, **kwargs: Any) -> T:
    """Run func in a worker thread; raise TimeoutError after timeout seconds."""
    future = _TIMEOUT_POOL.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise TimeoutError(f"call exceeded {timeout}s") from e


def _convert_google_errors(counter_prefix: str, exc: Exception) -> Exception:
    from google.api_core.exceptions import (
        DeadlineExceeded,
        InternalServerError,
        ResourceExhausted,
        ServiceUnavailable,
    )

    if isinstance(exc, DeadlineExceeded):
        counter(f"{counter_prefix}.timeout")
        logger.warning("%s call deadline exceeded", counter_prefix)
        return TimeoutError(f"{counter_prefix} call timed out: {exc}")
    if isinstance(exc, ServiceUnavailable):
        counter(f"{counter_prefix}.service_unavailable")
        logger.warning("%s service unavailable, will retry: %s", counter_prefix, exc)
        return ConnectionError(f"{counter_prefix} service unavailable: {exc}")
    if isinstance(exc, ResourceExhausted):
        counter(f"{counter_prefix}.rate_limited")
        logger.warning("%s rate limited (429), will retry: %s", counter_prefix, exc)
        return OSError(f"{counter_prefix} rate limited: {exc}")
    if isinstance(exc, InternalServerError):
        counter(f"{counter_prefix}.internal_error")
        logger.warning("%s internal error (500), will retry: %s", counter_prefix, exc)
        return ConnectionError(f"{counter_prefix} internal error: {exc}")
    return exc


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated composites from function-call args into plain Python."""
    if hasattr(value, "items"):
        return {key: _to_plain(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)) or (
        hasattr(value, "__iter__") and not isinstance(value, (str, bytes))
    ):
        return [_to_plain(val) for val in value]
    return value


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
def call_llm_function(
    prompt: str,
    function_declaration: dict[str, Any],
    system_instruction: str | None = None,
    counter_prefix: str = "llm",
) -> dict[str, Any]:
    """Call Gemini forcing one function call; return the call's arguments.

    Raises:
        TimeoutError / ConnectionError / OSError: transient (retried)
        ValueError: the response carried no function call
    """
    from vertexai.generative_models import (
        FunctionDeclaration,
        GenerationConfig,
        Tool,
        ToolConfig,
    )

    model = get_gemini_model_with_options(system_instruction=system_instruction)
    tool = Tool(function_declarations=[FunctionDeclaration(**function_declaration)])
    tool_config = ToolConfig(
        function_calling_config=ToolConfig.FunctionCallingConfig(
            mode=ToolConfig.FunctionCallingConfig.Mode.ANY,
            allowed_function_names=[function_declaration["name"]],
        )
    )
    generation_config = GenerationConfig(
        temperature=GEMINI_TEMPERATURE,
        max_output_tokens=GEMINI_MAX_TOKENS,
    )

    try:
        response = run_with_timeout(
            model.generate_content,
            LLM_TIMEOUT_SECONDS,
            prompt,
            generation_config=generation_config,
            tools=[tool],
            tool_config=tool_config,
        )
    except TimeoutError:
        counter(f"{counter_prefix}.timeout")
        logger.warning("LLM call timed out after %ds", LLM_TIMEOUT_SECONDS)
        raise
    except Exception as e:
        converted = _convert_google_errors(counter_prefix, e)
        if converted is e:
            logger.error("LLM call failed: %s", e)
            raise
        raise converted from e

    for candidate in response.candidates or []:
        for part in candidate.content.parts:
            function_call = getattr(part, "function_call", None)
            if function_call is not None and function_call.name == function_declaration["name"]:
                return _to_plain(function_call.args)

    counter(f"{counter_prefix}.no_function_call")
    raise ValueError("LLM response did not contain the requested function call")


@retry(
    stop=stop_after_attempt(EMBEDDING_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
def embed_text(text: str, counter_prefix: str = "embedding") -> list[float]:
    """Embedding vector for text."""
    model = get_embedding_model()
    try:
        embeddings = run_with_timeout(model.get_embeddings, EMBEDDING_TIMEOUT_SECONDS, [text])
    except TimeoutError:
        counter(f"{counter_prefix}.timeout")
        raise
    except Exception as e:
        converted = _convert_google_errors(counter_prefix, e)
        if converted is e:
            logger.error("Embedding call failed: %s", e)
            raise
        raise converted from e

    if not embeddings:
        raise ValueError("Embedding response was empty")
    return [float(value) for value in embeddings[0].values]
