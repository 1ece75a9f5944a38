"""Backend drivers."""

from llumiverse.drivers.openai import OpenAIDriver, classify_openai_error

__all__ = [
    "OpenAIDriver",
    "classify_openai_error",
]
