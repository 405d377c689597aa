"""
Tunnelrelay - A stable-address reverse proxy that forwards webhooks to whichever tunnel is currently registered.

Built with Python, FastAPI, httpx and Redis.
"""

__version__ = "1.0.0"
__author__ = "Tunnelrelay Team"
__description__ = "A stable-address reverse proxy that forwards webhooks to a dynamically registered tunnel"
