"""visitrelay Telemetry Server - cookie-based analytics relay over HTTP."""
