"""A small teaching kernel's file system, devices and tools, modelled in Python."""

__version__ = "0.1.0"