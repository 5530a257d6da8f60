"""
Campaign generator.

Turns a company domain into an outbound campaign: company analysis,
persona selection, lead sourcing with contact enrichment and
personalised email drafts.
"""

__version__ = "0.1.0"
