"""Monthly financial dashboard for senior-living facilities."""

__version__ = "0.1.0"
