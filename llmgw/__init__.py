"""
llmgw - Provider Response Normalization

Turns the native streaming events and response bodies of OpenAI, Anthropic,
Google AI Studio, AWS Bedrock and OpenAI-compatible providers into one
OpenAI Chat Completions wire format.
"""

__version__ = "1.0.0"
__author__ = "llmgw"
