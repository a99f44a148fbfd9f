"""CRM automation engine - trigger matching, graph execution and durable delays."""

__version__ = "0.1.0"
