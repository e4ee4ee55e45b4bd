# bhi_project_root/config/__init__.py
#
# Configuration Package API

from .settings import settings, Settings, configure_logging

__all__ = ["settings", "Settings", "configure_logging"]
