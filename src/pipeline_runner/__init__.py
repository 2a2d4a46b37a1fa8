"""
Azure DevOps pipeline run and approval automation package.

The package triggers pipeline runs, waits for manual-approval checkpoints and resolves them,
either one run at a time or for the latest pending approval of every pipeline.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
