"""vmplugins — versioned package manager for VM plugin binaries."""

__version__ = "0.1.0"
