"""Language-model completion client.

Thin, stateless wrapper around LangChain's ChatOpenAI. Each call sends a
system and a user message and returns the raw generated text; parsing is
left to the callers, which must tolerate anything the model sends back.
"""

import logging
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.issuebot.config import BotSettings


logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Raised when the completion endpoint cannot be reached or rejects a call.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class CompletionClient:
    """Sends role-tagged prompts to an OpenAI-compatible chat endpoint.

    Attributes:
        model_name: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens per call.
        timeout: Request timeout in seconds.

    Example:
        >>> client = CompletionClient(api_key="sk-...", model_name="gpt-4o-mini")
        >>> text = await client.complete(system_prompt, user_prompt)
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url or None
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._llm: Optional[ChatOpenAI] = None

    @classmethod
    def from_settings(cls, settings: BotSettings) -> "CompletionClient":
        return cls(
            api_key=settings.llm_api_key,
            model_name=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout,
        )

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.base_url,
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                api_key=self.api_key,
            )
        return self._llm

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = True,
    ) -> str:
        """Run one completion and return the generated text.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The request content.
            json_mode: Ask the provider to emit a single JSON object. The
                       provider may ignore this.

        Returns:
            The raw generated text.

        Raises:
            CompletionError: If the call fails at the transport or API level.
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        runnable = (
            self.llm.bind(response_format={"type": "json_object"})
            if json_mode
            else self.llm
        )

        try:
            response = await runnable.ainvoke(messages)
        except Exception as e:
            logger.error(
                "Completion call failed",
                extra={
                    "model": self.model_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise CompletionError(f"LLM invocation failed: {e}", cause=e) from e

        content = response.content
        if not isinstance(content, str):
            # Multi-part content; keep only the text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )

        logger.debug(
            "Completion received",
            extra={"model": self.model_name, "response_length": len(content)},
        )
        return content
