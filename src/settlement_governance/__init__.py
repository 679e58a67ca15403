"""Payment-settlement governance engine.

Decides per transaction whether a machine payment may be verified and
settled, combining allowlists, amount caps, rate limiting, replay
detection, sanctions screening, velocity circuit breaking, delegation
and budget checks, with an audit entry for every outcome.
"""

__version__ = "0.1.0"
