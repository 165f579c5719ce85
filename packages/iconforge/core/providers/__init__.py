"""Image provider adapters.

Every vendor is one variant behind the ImageProvider protocol; the
coordinator never imports a concrete provider.
"""

from iconforge.core.providers.base import ICON_PROMPT_SUFFIX, ImageProvider
from iconforge.core.providers.factory import create_enabled_providers, create_image_provider
from iconforge.core.providers.fal import FalImageProvider
from iconforge.core.providers.openai import OpenAIImageProvider

__all__ = [
    "ICON_PROMPT_SUFFIX",
    "FalImageProvider",
    "ImageProvider",
    "OpenAIImageProvider",
    "create_enabled_providers",
    "create_image_provider",
]
