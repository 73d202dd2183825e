"""Host integration for a DNS proxy daemon: services, settings, resolver setup and network discovery."""

__version__ = "0.1.0"