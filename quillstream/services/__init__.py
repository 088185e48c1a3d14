# Generation services
from quillstream.services.credits import CreditLedger, with_credits
from quillstream.services.generation import (
    ChapterGenerationOrchestrator,
    format_stream_event,
)

__all__ = [
    "ChapterGenerationOrchestrator",
    "CreditLedger",
    "format_stream_event",
    "with_credits",
]
