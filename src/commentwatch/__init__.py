"""Watch a paginated comment API and notify once per new or edited comment."""

__version__ = "0.3.0"
