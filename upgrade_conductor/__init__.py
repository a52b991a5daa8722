"""upgrade-conductor: orchestrate multi-repository framework upgrades against local git trees."""

__version__ = "0.3.0"
