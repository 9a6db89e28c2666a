"""Interface for Language Model clients"""

from abc import ABC, abstractmethod


class LLMClientInterface(ABC):
    """Abstract base class for LLM clients"""

    @abstractmethod
    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        """Return the model's completion for a prompt"""
        pass

    async def close(self):
        """Release network resources"""
        pass
