"""trafficpact command-line interface."""
