"""lingoworker - multilingual chat over a validated native module and a worker process."""

__version__ = "0.1.0"
__logo__ = "🗣️"
