"""kube-on-kube configuration package.

Centralized configuration management using Pydantic Settings.
"""

from kubeonkube.config.settings import Settings, current_namespace, get_settings

__all__: list[str] = ["Settings", "current_namespace", "get_settings"]
