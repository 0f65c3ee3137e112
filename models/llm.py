from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional

from langchain_core.language_models import BaseLanguageModel
from langchain_core.prompts import PromptTemplate
from langchain_ollama import OllamaLLM
from ollama import Client
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from common.config import LLMConfig
from common.logger import get_logger

log = get_logger(__name__)

LlmFactory = Callable[[str], BaseLanguageModel]


def load_local_llm(cfg: LLMConfig, model_name: Optional[str] = None) -> BaseLanguageModel:
    """
    Load an LLM for the given model name (default model when omitted).
    """
    if cfg.provider == "ollama":
        return OllamaLLM(
            model=model_name or cfg.default_model,
            temperature=cfg.temperature,
            base_url=cfg.base_url,
        )
    else:
        raise ValueError(f"Unsupported provider: {cfg.provider}")


class LlmService:
    """
    Text generation for the stages and the RAG flow. Keeps one client per
    model name so the default and the refinement model can be mixed freely.
    """

    def __init__(self, cfg: LLMConfig, llm_factory: Optional[LlmFactory] = None):
        self.cfg = cfg
        self._factory = llm_factory or (lambda name: load_local_llm(cfg, name))
        self._instances: Dict[str, BaseLanguageModel] = {}

    @property
    def default_model(self) -> str:
        return self.cfg.default_model

    @property
    def refine_model(self) -> str:
        return self.cfg.refine_model

    def get_llm(self, model: Optional[str] = None) -> BaseLanguageModel:
        name = model or self.cfg.default_model
        if name not in self._instances:
            log.info("Loading LLM '%s' (%s)", name, self.cfg.provider)
            self._instances[name] = self._factory(name)
        return self._instances[name]

    @retry(
        reraise=True,
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
    )
    def generate(
        self,
        template: PromptTemplate,
        variables: Dict[str, Any],
        model: Optional[str] = None,
    ) -> str:
        chain = template | self.get_llm(model)
        out = chain.invoke(variables)
        # chat models answer with a message, completion models with a str
        return getattr(out, "content", out)

    @retry(
        reraise=True,
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
    )
    def ask(self, prompt: str, model: Optional[str] = None) -> str:
        """Send a raw prompt, no template and no retrieved context."""
        out = self.get_llm(model).invoke(prompt)
        return getattr(out, "content", out)

    def stream(self, prompt: str, model: Optional[str] = None) -> Iterator[str]:
        """Finite, non-restartable token stream for a raw prompt."""
        for token in self.get_llm(model).stream(prompt):
            yield getattr(token, "content", token)

    def list_models(self) -> List[str]:
        """Names of the models the provider has available locally."""
        if self.cfg.provider != "ollama":
            raise ValueError(f"Unsupported provider: {self.cfg.provider}")
        response = Client(host=self.cfg.base_url).list()
        return [m.model for m in response.models]
