"""
Utility helper functions
"""
import re
import time
from typing import Optional


def sanitize_filename(name: str) -> str:
    """
    Sanitize a string to be used as a filename.
    
    Args:
        name: Original name
        
    Returns:
        Sanitized filename
    """
    # Remove invalid characters
    sanitized = re.sub(r'[<>:"/\\|?*]', '', name)
    # Replace spaces with underscores
    sanitized = sanitized.replace(' ', '_')
    # Limit length
    return sanitized[:100]


def format_duration(ms: Optional[float]) -> str:
    """
    Format duration in milliseconds to human-readable string.
    
    Args:
        ms: Duration in milliseconds
        
    Returns:
        Formatted duration string
    """
    if ms is None:
        return "unknown"
    ms = int(ms)
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) / 1000
        return f"{minutes}m {seconds:.0f}s"


def truncate_text(text: Optional[str], max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length.
    
    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add when truncated
        
    Returns:
        Truncated text
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def now_millis() -> float:
    """Current wall-clock time as epoch milliseconds."""
    return time.time() * 1000


def summarize_error_body(body: str, status: Optional[int] = None) -> str:
    """
    Shorten an error response body for logging.
    
    Proxy error pages (Cloudflare 502/524 and friends) come back as full HTML
    documents; those are collapsed into a one-line marker.
    
    Args:
        body: Raw response text
        status: HTTP status code if known
        
    Returns:
        Loggable error description
    """
    if "<!DOCTYPE html" in body or "<html" in body[:200].lower():
        return f"[HTML_ERROR_PAGE] status={status} - likely proxy timeout or gateway error"
    body = body.strip()
    if not body:
        return f"Unknown response data (status: {status})"
    return truncate_text(body, 500)
