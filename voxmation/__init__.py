"""
Voxmation OS - Automation Core

Rules-based account, deal and delivery automation for the Voxmation OS CRM,
together with the deterministic lead-scoring function and the
text-generation collaborator used by the UI action handlers.
"""

__version__ = "0.1.0"
