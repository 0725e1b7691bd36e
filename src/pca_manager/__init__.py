"""
PCA Manager - Software update orchestration for PCA servers.

This package keeps the durable update lock, the installed license and the
manifest diff between licenses, and drives the update job that installs and
removes software components.
"""

__version__ = "0.1.0"
