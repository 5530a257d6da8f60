"""HTTP interface for the campaign generator."""

from cg.api.server import GenerateRequest, create_app

__all__ = ["GenerateRequest", "create_app"]
