"""tagship: publish a package, a release note and a container image from a version tag."""

__version__ = "0.1.0"
