"""
llmgw - Generated Image Extraction

Pulls model-generated images out of raw provider payloads.
"""

from typing import Any, Callable, Dict, List

from ..core.models import GeneratedImage, ProviderFamily, resolve_provider_family

ImageExtractorFn = Callable[[Dict[str, Any], str], List[GeneratedImage]]


def _inline_data_url(inline: Dict[str, Any]) -> str:
    mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
    return f"data:{mime_type};base64,{inline.get('data', '')}"


def _google_images(data: Dict[str, Any]) -> List[GeneratedImage]:
    images: List[GeneratedImage] = []
    for candidate in data.get("candidates") or []:
        parts = ((candidate or {}).get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if inline and inline.get("data"):
                images.append(GeneratedImage(url=_inline_data_url(inline)))
    return images


def _openai_images(data: Dict[str, Any]) -> List[GeneratedImage]:
    images: List[GeneratedImage] = []
    for choice in data.get("choices") or []:
        if not isinstance(choice, dict):
            continue
        holder = choice.get("delta") or choice.get("message") or {}
        for image in holder.get("images") or []:
            if isinstance(image, dict):
                images.append(GeneratedImage.from_dict(image))
    return images


def extract_images(data: Dict[str, Any], provider: str) -> List[GeneratedImage]:
    """
    Extract generated images from a raw provider payload.

    Args:
        data: Raw event or response body as received from the provider
        provider: Provider id; selects the payload layout

    Returns:
        Images in payload order (empty when there are none)
    """
    family = resolve_provider_family(provider)

    if family == ProviderFamily.GOOGLE:
        return _google_images(data)

    if family in (ProviderFamily.OPENAI, ProviderFamily.OPENAI_COMPATIBLE):
        return _openai_images(data)

    return []
