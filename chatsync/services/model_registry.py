# chatsync/services/model_registry.py
# Catalog of models the client may pick from, keyed by OpenRouter model id

from typing import Dict, Any, List

MODEL_CAPABILITIES: Dict[str, Dict[str, Any]] = {
    "openai/gpt-4o": {"name": "GPT-4o", "provider": "OpenAI", "kind": "chat"},
    "openai/gpt-4o-mini": {"name": "GPT-4o Mini", "provider": "OpenAI", "kind": "chat"},
    "anthropic/claude-3.5-sonnet": {"name": "Claude 3.5 Sonnet", "provider": "Anthropic", "kind": "chat"},
    "anthropic/claude-3-haiku": {"name": "Claude 3 Haiku", "provider": "Anthropic", "kind": "chat"},
    "google/gemini-pro-1.5": {"name": "Gemini Pro 1.5", "provider": "Google", "kind": "chat"},
    "meta-llama/llama-3.1-405b-instruct": {"name": "Llama 3.1 405B", "provider": "Meta", "kind": "chat"},
    "mistralai/mistral-large": {"name": "Mistral Large", "provider": "Mistral AI", "kind": "chat"},

    "openai/dall-e-3": {"name": "DALL-E 3", "provider": "OpenAI", "kind": "image"},
    "stability-ai/stable-diffusion-xl": {"name": "Stable Diffusion XL", "provider": "Stability AI", "kind": "image"},
}

DEFAULT_CHAT_MODEL = "openai/gpt-4o-mini"
DEFAULT_IMAGE_MODEL = "openai/dall-e-3"


def list_models(kind: str = "chat") -> List[Dict[str, str]]:
    return [
        {"id": model_id, "name": cap["name"], "provider": cap["provider"]}
        for model_id, cap in MODEL_CAPABILITIES.items()
        if cap["kind"] == kind
    ]
