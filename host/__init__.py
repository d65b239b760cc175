"""Host package: command surface and event channel adapter."""

from host.commands import CommandHost

__all__ = ["CommandHost"]
