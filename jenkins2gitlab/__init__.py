"""Jenkins to GitLab CI pipeline analysis and conversion engine."""
__version__ = "1.0.0"
