from .anthropic import AnthropicGenerationService, detect_media_type

__all__ = ["AnthropicGenerationService", "detect_media_type"]
