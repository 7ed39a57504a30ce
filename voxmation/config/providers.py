"""
LLM Provider Factory

Provides a unified LangChain chat-model interface over:
- Groq (Llama 3.x)
- Google Gemini
- OpenAI
- Anthropic
- Ollama (local models)
"""

from typing import Type

from pydantic import BaseModel

from .settings import LLMConfig, LLMProviderType, get_settings


def _secret(value):
    return value.get_secret_value() if value else None


class LLMProvider:
    """
    Factory for chat models using LangChain.

    Provider packages are imported lazily so only the configured one
    needs to be installed.
    """

    def __init__(self, config: LLMConfig = None):
        self.config = config or get_settings().llm
        self._chat_model = None

    def get_chat_model(self):
        """Get chat model instance (lazy initialization)."""
        if self._chat_model is None:
            self._chat_model = self._create_chat_model()
        return self._chat_model

    def _create_chat_model(self):
        """Create chat model based on provider configuration."""
        provider = self.config.provider

        if provider == LLMProviderType.GROQ:
            return self._create_groq_chat()
        elif provider == LLMProviderType.GEMINI:
            return self._create_gemini_chat()
        elif provider == LLMProviderType.OPENAI:
            return self._create_openai_chat()
        elif provider == LLMProviderType.ANTHROPIC:
            return self._create_anthropic_chat()
        elif provider == LLMProviderType.OLLAMA:
            return self._create_ollama_chat()
        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")

    def _create_groq_chat(self):
        """Create Groq chat model."""
        try:
            from langchain_groq import ChatGroq
        except ImportError:
            raise ImportError("Install langchain-groq: pip install langchain-groq")

        return ChatGroq(
            model=self.config.model_name,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=_secret(self.config.groq_api_key),
            timeout=self.config.timeout
        )

    def _create_gemini_chat(self):
        """Create Google Gemini chat model."""
        try:
            from langchain_google_genai import ChatGoogleGenerativeAI
        except ImportError:
            raise ImportError("Install langchain-google-genai: pip install langchain-google-genai")

        return ChatGoogleGenerativeAI(
            model=self.config.model_name or "gemini-2.0-flash",
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_tokens,
            google_api_key=_secret(self.config.google_api_key),
            timeout=self.config.timeout
        )

    def _create_openai_chat(self):
        """Create OpenAI chat model."""
        try:
            from langchain_openai import ChatOpenAI
        except ImportError:
            raise ImportError("Install langchain-openai: pip install langchain-openai")

        return ChatOpenAI(
            model=self.config.model_name,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=_secret(self.config.openai_api_key),
            timeout=self.config.timeout
        )

    def _create_anthropic_chat(self):
        """Create Anthropic chat model."""
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError:
            raise ImportError("Install langchain-anthropic: pip install langchain-anthropic")

        return ChatAnthropic(
            model=self.config.model_name or "claude-3-5-sonnet-20241022",
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=_secret(self.config.anthropic_api_key),
            timeout=self.config.timeout
        )

    def _create_ollama_chat(self):
        """Create Ollama chat model for local models."""
        try:
            from langchain_community.chat_models import ChatOllama
        except ImportError:
            raise ImportError("Install langchain-community: pip install langchain-community")

        return ChatOllama(
            model=self.config.model_name or "llama3.2",
            base_url=self.config.ollama_base_url,
            temperature=self.config.temperature
        )

    def with_structured_output(self, schema: Type[BaseModel]):
        """
        Get chat model with structured output support.

        Uses LangChain's with_structured_output for Pydantic model outputs.
        """
        chat = self.get_chat_model()

        if hasattr(chat, "with_structured_output"):
            return chat.with_structured_output(schema)

        from langchain_core.output_parsers import PydanticOutputParser
        parser = PydanticOutputParser(pydantic_object=schema)
        return chat | parser


def get_chat_model(config: LLMConfig = None):
    """Get chat model instance."""
    return LLMProvider(config).get_chat_model()
