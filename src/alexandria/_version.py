"""
Fallback version module populated by the build backend.

For editable or source checkouts this default keeps imports working.
"""

__version__ = "0.1.0"
