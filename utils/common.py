"""Common utilities: path management and text helpers"""
import os

# ⚠️ DO NOT import settings here - causes circular import with config.py


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Returns the full log file path (log directory is created by setup_logging)."""
    return os.path.join(get_project_root(), 'log', 'rag_system.log')


# ============= Text Utilities =============

def make_excerpt(text: str, max_length: int) -> str:
    """Cuts text to at most max_length characters."""
    if max_length <= 0:
        return ""
    return text[:max_length]


def preview(text: str, length: int = 50) -> str:
    """Single-line preview of a question or chunk for log messages."""
    flat = " ".join(text.split())
    return flat if len(flat) <= length else f"{flat[:length]}..."
