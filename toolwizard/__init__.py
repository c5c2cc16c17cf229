"""toolwizard - runtime for declarative multi-step tools."""

__version__ = '0.1.0'
