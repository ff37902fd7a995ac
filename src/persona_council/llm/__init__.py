"""
LLM Client -- async wrapper over the Anthropic and OpenAI SDKs.

Usage:
    from .llm import create_client

    client = create_client()  # Auto-detects provider from env
    response = await client.call(prompt="Analyze this", role="persona")
    print(response.content)
"""

from .client import CacheablePrompt, LLMClient, LLMResponse, LLMUnavailableError, create_client
