"""Model chain with Cerebras -> Groq failover.

The chain is ``prompt | chat model | string parser``. Cerebras is the primary
provider; on any error LangChain's fallback runnable hands the same input to
Groq. Callers see a single ``ainvoke`` that returns a string or raises.
"""

import os
from dataclasses import asdict, dataclass

import structlog
from langchain_cerebras import ChatCerebras
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_groq import ChatGroq

logger = structlog.get_logger(__name__)

# History first, then the new human turn.
PROMPT_TEMPLATE = ChatPromptTemplate.from_messages([
    ("placeholder", "{chat_history}"),
    ("human", "{input}"),
])


@dataclass(frozen=True)
class SamplingConfig:
    """Generation settings shared by both providers."""
    temperature: float = 1.0
    max_tokens: int = 8192
    timeout: int = 30

    @classmethod
    def from_env(cls) -> "SamplingConfig":
        return cls(
            temperature=float(os.environ.get("LLM_TEMPERATURE", cls.temperature)),
            max_tokens=int(os.environ.get("LLM_MAX_TOKENS", cls.max_tokens)),
            timeout=int(os.environ.get("LLM_TIMEOUT", cls.timeout)),
        )


class LLMAdapter:
    """Builds the provider models and the chat chain from the environment.

    Args:
        sampling: Overrides the ``LLM_*`` environment settings.
    """

    def __init__(self, sampling: SamplingConfig | None = None):
        self.sampling = sampling or SamplingConfig.from_env()

        self.cerebras_key = os.environ.get("CEREBRAS_API_KEY", "")
        self.groq_key = os.environ.get("GROQ_API_KEY", "")
        self.cerebras_model_name = os.environ.get("CEREBRAS_MODEL", "gpt-oss-120b")
        self.groq_model_name = os.environ.get("GROQ_MODEL", "openai/gpt-oss-120b")

        self.primary_llm = self._build_model(ChatCerebras, self.cerebras_key, self.cerebras_model_name)
        self.fallback_llm = self._build_model(ChatGroq, self.groq_key, self.groq_model_name)

    @property
    def temperature(self) -> float:
        return self.sampling.temperature

    @property
    def max_tokens(self) -> int:
        return self.sampling.max_tokens

    def _build_model(self, model_cls: type[BaseChatModel], api_key: str, model: str) -> BaseChatModel:
        return model_cls(api_key=api_key, model=model, **asdict(self.sampling))

    def get_chat_model(self) -> Runnable:
        """Return the primary model with Groq attached as fallback.

        Returns:
            RunnableWithFallbacks wrapping ChatCerebras.
        """
        return self.primary_llm.with_fallbacks([self.fallback_llm])

    def build_chain(self) -> Runnable:
        """Compose ``prompt | model | parser``.

        Returns:
            Runnable taking ``{"input": str, "chat_history": list}`` and
            producing the reply text.
        """
        chain = PROMPT_TEMPLATE | self.get_chat_model() | StrOutputParser()
        logger.info("llm.chain_built", primary=self.cerebras_model_name,
                    fallback=self.groq_model_name)
        return chain

    def is_healthy(self) -> bool:
        """True if either provider has a key configured."""
        return bool(self.cerebras_key) or bool(self.groq_key)
