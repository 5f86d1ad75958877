"""
Top-level package initializer for chatfilter_API.

The engine itself lives in `chatfilter_API.app.core.Filter`; hosts normally
only need `create_filter_engine` from `filter_engine`.
"""

__version__ = "0.3.0"
