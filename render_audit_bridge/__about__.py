"""Metadata for render_audit_bridge."""

__all__ = [
    "__title__",
    "__version__",
    "__description__",
    "__requires_python__",
]

__title__ = "render_audit_bridge"
__version__ = "0.1.0"
__description__ = (
    "HTTP tool bridge: bounded headless-browser HTML excerpts and compact "
    "PageSpeed Insights summaries for calling agents."
)
__requires_python__ = ">=3.10"
