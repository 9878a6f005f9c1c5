from .anthropic import AnthropicAdapter
from .bedrock import BedrockAdapter
from .ollama import OllamaAdapter
from .openai import OpenAIAdapter

__all__ = [
    "AnthropicAdapter",
    "BedrockAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
]
