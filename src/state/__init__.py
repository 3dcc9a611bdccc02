"""
Workflow state: vault data models, persisted configuration, the session token,
and the encrypted on-disk item cache.
"""

from .models import Config, Folder, SessionState, VaultItem

__all__ = ["Config", "Folder", "SessionState", "VaultItem"]
