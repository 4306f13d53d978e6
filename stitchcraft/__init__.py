"""StitchCraft Ghana: multi-tenant API for tailoring businesses."""

__version__ = "1.0.0"
