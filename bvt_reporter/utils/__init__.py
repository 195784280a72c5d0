"""Utilities package"""
from .helpers import (
    format_duration,
    now_millis,
    sanitize_filename,
    summarize_error_body,
    truncate_text,
)

__all__ = [
    "format_duration",
    "now_millis",
    "sanitize_filename",
    "summarize_error_body",
    "truncate_text",
]
