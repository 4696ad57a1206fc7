"""trafficpact: contract testing for recorded HTTP traffic."""

__version__ = "0.1.0"
