"""
llmgw Core Module

Contains the unified data models and the error taxonomy.
"""

from .models import (
    # Enums
    ProviderFamily,
    Role,
    FinishReason,
    PROVIDER_FAMILIES,
    resolve_provider_family,

    # Messages
    Message,
    ContentPart,
    TextContent,
    ImageContent,
    ImageUrl,
    GeneratedImage,

    # Tool calling
    ToolCall,
    FunctionCall,

    # Responses
    ChatCompletionResponse,
    Choice,
    Usage,

    # Serialization
    message_to_dict,
    response_to_dict,
)

from .errors import (
    ErrorType,
    ErrorDetails,
    GatewayException,
    InfraError,
    ConnectionTimeoutError,
    ReadTimeoutError,
    UpstreamError,
    ProviderStreamError,
    StreamInterruptedError,
    GatewayInternalError,
    create_error_from_exception,
)

__all__ = [
    # Enums
    "ProviderFamily",
    "Role",
    "FinishReason",
    "PROVIDER_FAMILIES",
    "resolve_provider_family",

    # Messages
    "Message",
    "ContentPart",
    "TextContent",
    "ImageContent",
    "ImageUrl",
    "GeneratedImage",

    # Tool calling
    "ToolCall",
    "FunctionCall",

    # Responses
    "ChatCompletionResponse",
    "Choice",
    "Usage",

    # Serialization
    "message_to_dict",
    "response_to_dict",

    # Errors
    "ErrorType",
    "ErrorDetails",
    "GatewayException",
    "InfraError",
    "ConnectionTimeoutError",
    "ReadTimeoutError",
    "UpstreamError",
    "ProviderStreamError",
    "StreamInterruptedError",
    "GatewayInternalError",
    "create_error_from_exception",
]
