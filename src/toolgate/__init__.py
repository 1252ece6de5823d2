"""toolgate: a capability-filtered tool server speaking the Model Context Protocol."""

__version__ = "0.1.0"
