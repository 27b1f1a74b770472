"""ghconnector - GitHub webhook connector for automation runtimes."""

__version__ = "0.1.0"
