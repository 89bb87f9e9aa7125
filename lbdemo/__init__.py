"""Load-balanced web tier demo.

Two identical application instances behind a reverse proxy share a Redis
counter store. This package holds:
 - the per-instance accounting service and its HTTP surface
 - a bounded readiness prober for the fronting endpoint
 - a load distribution sampler
 - a health aggregator for the proxy, the instances and the store

The proxy and the container lifecycle are external; the code here only
calls into them.
"""
