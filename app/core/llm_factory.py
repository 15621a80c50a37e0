import logging

from app.core.config import Settings

logger = logging.getLogger(__name__)


def get_chat_model(settings: Settings, model: str, max_tokens: int = 4000, temperature: float = 0):
    """Create a chat model for the configured provider.

    Centralizes LLM creation so all pipelines share the same config.
    """
    if settings.llm_provider == "ollama":
        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=model,
            temperature=temperature,
            num_predict=max_tokens,
            base_url=settings.ollama_base_url,
        )

    if settings.llm_provider != "anthropic":
        raise ValueError(f"Unsupported LLM_PROVIDER: {settings.llm_provider}")

    from langchain_anthropic import ChatAnthropic

    kwargs = {}
    if settings.anthropic_api_key:
        kwargs["api_key"] = settings.anthropic_api_key
    return ChatAnthropic(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        default_request_timeout=settings.model_timeout,
        **kwargs,
    )
