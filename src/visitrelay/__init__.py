"""
visitrelay - a cookie-driven analytics relay.

The ``visitrelay.telemetry`` package holds the identity, session and
visit-context logic together with the analytics sink client;
``visitrelay.telemetry_server`` exposes it over HTTP.
"""

__version__ = "0.1.0"
