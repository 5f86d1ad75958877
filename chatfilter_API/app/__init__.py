"""
App package initializer.

Core modules (`app/core/<Feature>/`) are plain directories imported by their
full dotted path, e.g. `chatfilter_API.app.core.Filter.filter_engine`.
"""
