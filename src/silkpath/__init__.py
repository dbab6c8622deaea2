"""SilkPath Studio - AI hijab fashion photos with one-click Instagram publishing."""

__version__ = "0.3.0"
