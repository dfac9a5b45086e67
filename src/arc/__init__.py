"""Arc: a single-node local development orchestrator.

One HTTP entry point routes requests by domain to static file trees or to
locally supervised backend processes, and the whole system reloads itself
when its configuration or watched files change.
"""

__version__ = "0.1.0"
