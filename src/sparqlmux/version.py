"""Version information for :mod:`sparqlmux`."""

VERSION = "0.3.0"
