"""
Client-side rider and customer session components.

These run inside a rider or customer session event loop and talk to the
backend over HTTP: the geolocation source, the location reporter and the
tracking poller.
"""
